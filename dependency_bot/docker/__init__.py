from .reference import Reference, InvalidReference, parse_reference, digest_identifier, repository_of
from .registry import Manifest, RegistryError, RegistryInspector
