from .directory_session import DirectorySession, get_attribute_values

__all__ = ['DirectorySession', 'get_attribute_values']
