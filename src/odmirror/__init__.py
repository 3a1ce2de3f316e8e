"""ODMirror - mirror a OneDrive folder tree from one account to another."""

__version__ = '0.1.0'
__license__ = 'MIT'

from .config import Config
from .onedrive_client import OneDriveClient
from .sync import MirrorSync, SyncReport

__all__ = ['Config', 'OneDriveClient', 'MirrorSync', 'SyncReport']
