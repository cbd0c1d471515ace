from .adapters.directory_session import DirectorySession
from .facade.directory_facade import DirectoryFacade
from .reconcilers.entry_reconciler import EntryReconciler
from .reconcilers.membership_synchronizer import MembershipSynchronizer

__all__ = ['DirectorySession', 'DirectoryFacade', 'EntryReconciler', 'MembershipSynchronizer']
