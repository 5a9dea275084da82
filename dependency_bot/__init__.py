from .config import Config
from .server import Server
