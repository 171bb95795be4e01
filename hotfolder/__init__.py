"""Hotfolder Watcher: serialized processing for a watched drop folder.

Polls a single hotfolder for newly arriving files, runs each one through a
configured processing action one at a time, then archives it into the
``_processed`` subfolder.
"""

__version__ = "1.0.0"
__app_name__ = "Hotfolder Watcher"
