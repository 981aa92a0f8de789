REDIS_META_KEY = "room:meta:{slug}" # room id - hash with connected tokens and created_at
REDIS_MESSAGES_KEY = "room:messages:{slug}" # room id - list of JSON encoded messages
REDIS_ROOM_CHANNEL = "room:channel:{slug}" # room id - pub/sub channel name

# **`room:meta:{id}` hash fields**
# - `connected` = JSON array of admitted tokens
# - `created_at` = epoch milliseconds
# The TTL on this key is the room's lifetime; every other room key mirrors it.


def meta_key(room_id: str) -> str:
    return REDIS_META_KEY.format(slug=room_id)


def messages_key(room_id: str) -> str:
    return REDIS_MESSAGES_KEY.format(slug=room_id)


def channel_name(room_id: str) -> str:
    return REDIS_ROOM_CHANNEL.format(slug=room_id)


def auxiliary_keys(room_id: str) -> list[str]:
    """Room keys whose TTL follows the meta key."""
    return [messages_key(room_id)]


def room_scoped_keys(room_id: str) -> list[str]:
    return [meta_key(room_id), *auxiliary_keys(room_id)]
