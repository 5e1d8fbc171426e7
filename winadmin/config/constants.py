"""Hard-coded configuration constants not meant to be user-configurable."""

NOT_AVAILABLE = "N/A"
UNKNOWN = "Unknown"

DEFAULT_MAX_CONCURRENT_PROCESSES = 8
DEFAULT_OUTPUT_ENCODING = "utf-8"

# Characters of offending output kept in MalformedOutput errors
MALFORMED_SNIPPET_CHARS = 500

# stderr fragments that mean "nothing matched" rather than a failure.
# Matched case-insensitively; English tool output only.
BENIGN_EMPTY_PATTERNS: tuple[str, ...] = (
    "No events were found that match the specified selection criteria",
    "No MSFT_",
    "No matching",
)

# Prepended to every PowerShell script so output is UTF-8 and free of progress records
POWERSHELL_PREAMBLE = (
    "$ProgressPreference = 'SilentlyContinue'; "
    "[Console]::OutputEncoding = [System.Text.Encoding]::UTF8; "
    "$OutputEncoding = [System.Text.Encoding]::UTF8; "
)

POWERSHELL_FLAGS: tuple[str, ...] = (
    "-NoProfile",
    "-NonInteractive",
    "-ExecutionPolicy",
    "Bypass",
)

DEVICE_CLASSES: tuple[str, ...] = (
    "Display",
    "Net",
    "USB",
    "AudioEndpoint",
    "Image",
    "PrintQueue",
    "DiskDrive",
    "Media",
    "Bluetooth",
)

SUPPORTED_FILESYSTEMS: dict[str, str] = {
    "NTFS": "NTFS",
    "FAT32": "FAT32",
    "EXFAT": "exFAT",
    "REFS": "ReFS",
}

# Defender signature update entry reported by search_available_updates
DEFENDER_UPDATE_KB = "KB2267602"
DEFENDER_UPDATE_SIZE = 15 * 1024 * 1024
DEFENDER_SIGNATURE_MAX_AGE_DAYS = 1
