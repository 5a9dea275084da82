from .registry import RegistryHook
from .watch import WatchHook
from .services import ServiceHook
