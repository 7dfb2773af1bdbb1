"""Redis Lua scripts for the bucket rate limiters.

These scripts run read-modify-write on a bucket as one atomic step, so
concurrent callers across instances cannot both debit the same pre-refill
state.

Both scripts take:
    KEYS[1]: bucket hash key
    ARGV[1]: capacity (policy limit)
    ARGV[2]: rate per second (refill or leak)
    ARGV[3]: now, unix seconds
    ARGV[4]: ttl in seconds

and return {allowed (0|1), state}. The state is returned as a string because
Redis truncates Lua numbers to integers in replies.
"""

# Token bucket: refill by elapsed * rate, capped at capacity, then debit one
# token if available. A denied call leaves the token count unchanged.
TOKEN_BUCKET_SCRIPT = """
    local key = KEYS[1]
    local capacity = tonumber(ARGV[1])
    local rate = tonumber(ARGV[2])
    local now = tonumber(ARGV[3])
    local ttl = tonumber(ARGV[4])

    local state = redis.call('HMGET', key, 'tokens', 'ts')
    local tokens = tonumber(state[1])
    local ts = tonumber(state[2])
    if tokens == nil then
        tokens = capacity
    end
    if ts == nil then
        ts = now
    end

    local elapsed = math.max(0, now - ts)
    tokens = math.min(capacity, tokens + elapsed * rate)

    local allowed = 0
    if tokens >= 1 then
        tokens = tokens - 1
        allowed = 1
    end

    redis.call('HSET', key, 'tokens', tostring(tokens), 'ts', tostring(now))
    redis.call('EXPIRE', key, ttl)

    return {allowed, tostring(tokens)}
"""

# Leaky bucket: drain by elapsed * rate, floored at zero, then add one unit
# of water if it fits. A denied call adds nothing.
LEAKY_BUCKET_SCRIPT = """
    local key = KEYS[1]
    local capacity = tonumber(ARGV[1])
    local rate = tonumber(ARGV[2])
    local now = tonumber(ARGV[3])
    local ttl = tonumber(ARGV[4])

    local state = redis.call('HMGET', key, 'water', 'ts')
    local water = tonumber(state[1]) or 0
    local ts = tonumber(state[2])
    if ts == nil then
        ts = now
    end

    local elapsed = math.max(0, now - ts)
    water = math.max(0, water - elapsed * rate)

    local allowed = 0
    if water + 1 <= capacity then
        water = water + 1
        allowed = 1
    end

    redis.call('HSET', key, 'water', tostring(water), 'ts', tostring(now))
    redis.call('EXPIRE', key, ttl)

    return {allowed, tostring(water)}
"""
