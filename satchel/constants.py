# Archive naming
DEFAULT_ARCHIVE_NAME = "out.tar.gz"
COMPRESSED_SUFFIXES = (".gz", ".gzip")

# gzip level used when none is configured (gzip's own default)
DEFAULT_COMPRESS_LEVEL = 9

# Copy buffer for file bodies, both directions
COPY_BUFSIZE = 1024 * 1024  # 1 MiB

# Kinds carried by an archive entry
KIND_FILE = "file"
KIND_DIR = "dir"

# Sealed (password-protected) stream
SEAL_MAGIC = b"STCHSEAL"  # 8 bytes
SEAL_VERSION = 1
SEAL_FRAME_SIZE = 64 * 1024  # plaintext bytes per frame
SEAL_FLAG_FINAL = 1 << 0

# Exit statuses returned by satchel.cli.main
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
