from balance.storage.store import (
    AutoSaver,
    RestoreReport,
    SaveReport,
    TaskStore,
    file_name_for,
)

__all__ = ["AutoSaver", "RestoreReport", "SaveReport", "TaskStore", "file_name_for"]
