# sheetbender/defaults.py
"""Default settings - no imports to avoid circular dependencies."""

settings = {
    'default_chunk_size': 200,
    'default_timezone': '+00:00',
    'default_sheet_name': 'Data',
    'label_delimiter': ',',         # joins option labels of select fields
    'association_delimiter': ',',   # joins values across related records
    'region_delimiter': '/',        # joins the levels of a region path
    'null_string': '',              # how null is represented in text outputs
    'date_format': '%Y-%m-%d',
    'time_format': '%H:%M:%S',
    'datetime_format': '%Y-%m-%d %H:%M:%S',
    'timestamp_format': '%Y-%m-%d %H:%M:%S.%f',  # with microseconds
    'tz_suffix': ' %z',
    'logging': {
        'directory': './logs',
        'level': 'INFO',
        'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        'timestamp_format': '%Y-%m-%d %H:%M:%S',
        'filename_format': '%Y%m%d_%H%M%S',  # Set to '' for single log file (no timestamp)
        'split_errors': True,
        'console': True,
        'retention_days': 30,
    }
}
