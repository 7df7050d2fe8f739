from tabpilot.store.service import JsonFileStore, KeyValueStore, MemoryStore

__all__ = ['KeyValueStore', 'MemoryStore', 'JsonFileStore']
