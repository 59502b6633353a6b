"""Redis Lua scripts for the suspicion store.

Each script runs atomically on the Redis server, so concurrent hits from
many application instances cannot interleave inside one transition. Time comes
from Redis ``TIME`` so every instance agrees on expiry.

Records are hashes with fields ``score``, ``expiry`` (epoch ms) and
``isBlocked`` (``"true"``/``"false"``).
"""

# KEYS[1] = record key
# ARGV[1] = suspicion threshold, ARGV[2] = block duration ms, ARGV[3] = ttl ms
# Returns the new score.
INCREMENT_SCRIPT = """
    local key = KEYS[1]
    local threshold = tonumber(ARGV[1])
    local block_duration_ms = tonumber(ARGV[2])
    local ttl = tonumber(ARGV[3])

    local t = redis.call('TIME')
    local now = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)

    local score = redis.call('HGET', key, 'score')
    local expiry = tonumber(redis.call('HGET', key, 'expiry'))

    if not score or not expiry or expiry <= now then
        -- Absent or stale: restart the window
        redis.call('HSET', key, 'score', 1, 'expiry', now + ttl, 'isBlocked', 'false')
        return 1
    end

    score = tonumber(score) + 1
    if score >= threshold then
        redis.call('HSET', key, 'score', score,
            'expiry', math.max(expiry, now + block_duration_ms), 'isBlocked', 'true')
    else
        redis.call('HSET', key, 'score', score, 'expiry', math.max(expiry, now + ttl))
    end
    return score
"""

# KEYS[1] = record key
# Returns 1 when the record is blocked and its expiry is still ahead.
IS_BLOCKED_SCRIPT = """
    local key = KEYS[1]
    local blocked = redis.call('HGET', key, 'isBlocked')
    if blocked ~= 'true' then
        return 0
    end

    local t = redis.call('TIME')
    local now = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)
    local expiry = tonumber(redis.call('HGET', key, 'expiry'))
    if expiry and expiry > now then
        return 1
    end
    return 0
"""

# ARGV[1] = key pattern (store prefix followed by *)
# Returns the number of deleted records.
FLUSH_EXPIRED_SCRIPT = """
    local t = redis.call('TIME')
    local now = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)

    local deleted = 0
    local cursor = '0'
    repeat
        local page = redis.call('SCAN', cursor, 'MATCH', ARGV[1], 'COUNT', 500)
        cursor = page[1]
        for _, key in ipairs(page[2]) do
            local expiry = tonumber(redis.call('HGET', key, 'expiry'))
            if expiry and expiry <= now then
                redis.call('DEL', key)
                deleted = deleted + 1
            end
        end
    until cursor == '0'

    return deleted
"""
