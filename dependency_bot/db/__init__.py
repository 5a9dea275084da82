from .store import StoreError, Database, ImageStore, DependencyStore, ServiceStore, Edge, StaleRow
