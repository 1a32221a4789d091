from .settings import (
    EngineSettings,
    FormattingSettings,
    Settings,
    TranscriptionRecord,
    TranscriptionSettings,
    add_history_record,
    clear_history,
    get_config_dir,
    get_data_dir,
    get_history_file,
    get_recordings_dir,
    get_settings,
    load_history,
    save_history,
)

__all__ = [
    "EngineSettings",
    "FormattingSettings",
    "Settings",
    "TranscriptionRecord",
    "TranscriptionSettings",
    "add_history_record",
    "clear_history",
    "get_config_dir",
    "get_data_dir",
    "get_history_file",
    "get_recordings_dir",
    "get_settings",
    "load_history",
    "save_history",
]
