from . import entry_builder

__all__ = ['entry_builder']
