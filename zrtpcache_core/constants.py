# zrtpcache_core/constants.py

IDENTIFIER_LEN = 12          # raw ZID length in bytes
RS_LENGTH = 32               # retained secret / MitM key length in bytes

DEFAULT_ACCOUNT = "_STANDARD_"
NO_NAME = "_NO_NAME_"

# SQLite ignores VARCHAR lengths, so the bound is enforced before writes
MAX_NAME_LENGTH = 1000
MAX_ACCOUNT_LENGTH = 1000

DEFAULT_DB_PATH = "db/zrtp_cache.db"
