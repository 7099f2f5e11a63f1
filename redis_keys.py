REDIS_HISTORY_KEY = "room:history:{slug}" # room id - list of JSON history records, oldest first
REDIS_USERS_KEY = "chat:users" # set of every username ever seen
REDIS_USER_KEY = "user:{username}" # username - hash with first_seen / last_seen

# **Example `room:history:{id}` entry**
# {"username": "alice", "body": "hi", "timestamp_millis": 1700000000000}
# The list is trimmed to HISTORY_LIMIT entries on every append.

# **Example `user:{username}` hash fields**
# - `first_seen` = epoch millis of the first join
# - `last_seen` = epoch millis of the latest join
