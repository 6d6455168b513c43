"""
Relational storage for pending upload work.
"""
from .models import Base, PendingUploadModel, UploadStatus
from .repository import SQLAlchemyWorkStore, UploadWorkItem

__all__ = [
    'Base',
    'PendingUploadModel',
    'UploadStatus',
    'SQLAlchemyWorkStore',
    'UploadWorkItem',
]
