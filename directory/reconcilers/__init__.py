from .entry_reconciler import EntryReconciler, ReconcileOutcome
from .membership_synchronizer import MembershipSynchronizer, MembershipSyncResult

__all__ = ['EntryReconciler', 'ReconcileOutcome', 'MembershipSynchronizer', 'MembershipSyncResult']
