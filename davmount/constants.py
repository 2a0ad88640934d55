"""Module defining various global constants."""

# davmount version
VERSION = "1.0.0"

# davmount provider protocol
# The major version must be identical on the host runtime and the provider service.
PROTOCOL_VERSION = "1.0.0"

# Special exit code for when davmount itself fails.
DAVMOUNT_ERROR_CODE = 254

# Scheme prefix of mount identities handed to the host runtime.
MOUNT_ID_SCHEME = "davmount://"

# Default endpoint of the provider service.
DEFAULT_ENDPOINT = "tcp://127.0.0.1:7878"

# Width of the zero padded byte offsets in chunk object names. Fifteen digits cover
# resources of up to ~1 PB while keeping string order equal to byte order.
CHUNK_INDEX_WIDTH = 15

# Name of the object that, when moved, makes the server assemble an upload's chunks.
CHUNK_COMPLETION_NAME = ".file"
