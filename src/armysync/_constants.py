"""Internal constants shared across the library."""

FIRESTORE_BASE_URL = "https://firestore.googleapis.com/v1"
USER_AGENT = "armysync/1"

#: Remote collection layout: ``users/{uid}/data/{document}``.
USERS_COLLECTION = "users"
DATA_COLLECTION = "data"

SYNCED_DATA_DOCUMENT = "syncedData"
ARMY_LISTS_METADATA_DOCUMENT = "armyListsMetadata"
CUSTOM_DETACHMENTS_METADATA_DOCUMENT = "customDetachmentsMetadata"

DEFAULT_DEBOUNCE_DELAY = 1.0
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_SYNC_INTERVAL = 60.0

#: Unnamed army lists older than this are removed by ``ArmyListStore.cleanup_unnamed``.
UNNAMED_LIST_MAX_AGE_SECONDS = 24 * 3600
