"""Centralized user-facing text for the dynscope CLI."""

from __future__ import annotations

class Styles:
    ERROR = "red"
    WARNING = "yellow"
    SUCCESS = "green"
    INFO = "dim"
    TITLE = "bold cyan"
    TABLE_HEADER = "bold magenta"


class Messages:
    APP_HELP = "dynscope – split cscope databases with fast incremental updates."
    HELP_PATH = "Directory inside the project; the project root is detected from it."
    HELP_ROOT = "Use this directory as the project root without marker detection."
    HELP_UPDATE_FILES = "Source files that changed and should move to the small database."
    HELP_FIND_KIND = (
        "Query kind: s/symbol, g/definition, d/callee, c/caller, t/text, "
        "e/pattern, f/file, i/includer, a/assignment (or the numeric code)."
    )
    HELP_FIND_TERM = "Symbol, text, pattern or file name to look up."
    HELP_FIND_FORMAT = "Output format: rich table or tab separated porcelain lines."
    HELP_MERGE_FORCE = "Merge even if the big database was rebuilt recently."
    HELP_DEBUG = "Enable debug logging."
    HELP_SCAN_LIMIT = "Number of discovered files to print."
    HELP_DOCTOR = "Check the indexer, the file finder and the configuration."
    HELP_SHOW_CONFIG = "Show current configuration."
    HELP_SET_EXEC = "Set the indexer executable (e.g. cscope or gtags-cscope)."
    HELP_SET_FINDER = "Set the file finder: auto, fd, rg, find, powershell or walk."
    HELP_SET_TIMEOUT = "Set the query timeout in seconds."
    HELP_SET_INTERVAL = "Set the minimum number of seconds between big database rebuilds."
    HELP_ADD_PATTERN = "Add a file pattern to index (e.g. '*.S')."
    HELP_ADD_EXCLUDE = "Add a directory name to exclude from scanning."
    HELP_RESOLVE_LINKS = "Resolve symlinks before writing file lists."
    HELP_RESET_CONFIG = "Restore the default configuration."

    ERROR_NO_FILES = "No source files found in {root}."
    ERROR_NO_SCANNER = "No suitable file finder available ({finder}). Install fd or rg."
    ERROR_OUTSIDE_ROOT = "{path} is outside the project root {root}."
    ERROR_SUBPROCESS_FAILED = "{command} failed with exit code {code}: {detail}"
    ERROR_SUBPROCESS_START = "Failed to start {command}: {reason}"
    ERROR_SUBPROCESS_TIMEOUT = "{command} timed out after {timeout:g}s."
    ERROR_NOT_INITIALIZED = "Database not initialized for {root}. Run `dynscope init` first."
    ERROR_ALREADY_UPDATING = "A database update is already running for {root}."
    ERROR_WRITE_FILE_LIST = "Failed to write file list {path}: {reason}"
    ERROR_EMPTY_TERM = "Query term must not be empty."
    ERROR_QUERY_KIND = "Unknown query kind '{value}'. Allowed: {allowed}."
    ERROR_FINDER_INVALID = "Unsupported file finder '{value}'. Allowed: {allowed}."
    ERROR_TIMEOUT_INVALID = "Timeout must be greater than 0."
    ERROR_INTERVAL_INVALID = "Interval must be >= 0."
    ERROR_UNEXPECTED = "Unexpected failure during {operation}: {reason}"
    ERROR_CONFIG_JSON_INVALID = "Config payload must be a JSON object."
    ERROR_CONFIG_VALUE_INVALID = "Invalid value for config field {field}."

    INFO_INIT_RUNNING = "Building cscope database under {root}..."
    INFO_INIT_LOADED = "Loaded existing database for {root}."
    INFO_DB_BUILT = "Database built ({count} files)."
    INFO_DB_REBUILT = "Database rebuilt ({count} files)."
    INFO_UPDATE_DONE = "Small database updated ({count} files)."
    INFO_UPDATE_SKIPPED = "{path} does not match the configured file patterns; skipped."
    INFO_MERGE_DONE = "Merged {count} files back into the big database."
    INFO_MERGE_NOTHING = "Small database is empty; nothing to merge."
    INFO_MERGE_NOT_DUE = "Big database was rebuilt {ago}s ago; merge skipped (interval {interval}s)."
    INFO_REMOVED = "Database files removed for {root}."
    INFO_NO_RESULTS = "No matches for '{term}'."
    INFO_PARTITION_FAILED = "Query against {partition} database failed: {detail}"
    INFO_SCAN_HEADER = "Project root: {root}\nFile finder: {finder}"
    INFO_SCAN_COMMAND = "Find command: {command}"
    INFO_SCAN_FOUND = "Found {count} files."
    INFO_SCAN_MORE = "  ... and {count} more"
    INFO_CONFIG_SUMMARY = (
        "Indexer: {exec} {args}\n"
        "Databases: {big} / {small} / {files}\n"
        "File patterns: {patterns}\n"
        "Exclude dirs: {excludes}\n"
        "File finder: {finder}\n"
        "Resolve links: {links}\n"
        "Query timeout: {timeout}s\n"
        "Big update interval: {interval}s\n"
        "Root markers: {markers}\n"
        "Debug: {debug}"
    )
    INFO_CONFIG_UPDATED = "Configuration updated."
    INFO_CONFIG_RESET = "Configuration reset to defaults."

    STATUS_TITLE = "Cscope Dynamic Status"
    STATUS_SUMMARY = (
        "Initialized: {initialized}\n"
        "Updating: {updating}\n"
        "Project root: {root}\n"
        "\n"
        "Big DB exists: {big_exists}\n"
        "Small DB exists: {small_exists}\n"
        "Files in big DB: {big_count}\n"
        "Files in small DB: {small_count}"
    )
    STATUS_LAST_UPDATE = "Last big update: {ago}s ago"

    TABLE_HEADER_INDEX = "#"
    TABLE_HEADER_PATH = "File"
    TABLE_HEADER_LINE = "Line"
    TABLE_HEADER_SYMBOL = "Symbol"
    TABLE_HEADER_TEXT = "Text"

    DOCTOR_TITLE = "dynscope v{version} diagnostics"
    DOCTOR_INDEXER_FOUND = "`{exec}` found at {path}."
    DOCTOR_INDEXER_MISSING = "`{exec}` not found on PATH."
    DOCTOR_INDEXER_MISSING_DETAIL = "Install cscope or set another indexer with `dynscope config --set-exec`."
    DOCTOR_FINDER_OK = "Using {finder} for file discovery."
    DOCTOR_FINDER_MISSING = "Configured file finder '{finder}' is not available."
    DOCTOR_CONFIG_EXISTS = "Config file at {path}."
    DOCTOR_CONFIG_DEFAULT = "Using default configuration."
    DOCTOR_CONFIG_INVALID = "Config file {path} could not be read."
    DOCTOR_ROOT_WRITABLE = "Project root {root} is writable."
    DOCTOR_ROOT_READONLY = "Project root {root} is not writable."
    DOCTOR_ALL_PASSED = "All checks passed."
    DOCTOR_SOME_FAILED = "Some checks failed."
