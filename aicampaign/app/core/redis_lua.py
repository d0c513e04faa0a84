"""Redis Lua scripts for the campaign slot counter.

Scripts run server-side as a single command, so no other client can
interleave between the read and the write. Every change to the counter
that pairs with a reservation lease happens in the same script as the
lease change, so counter and leases are always observed together.
"""

# Atomic compare-and-decrement of the slot counter.
# KEYS[1]: slot counter key
# Returns {1, remaining} when a slot was taken, {0, 0} otherwise.
# A missing or non-positive counter is never decremented, so the counter
# cannot go below zero.
DECREMENT_IF_POSITIVE_SCRIPT = """
    local available = tonumber(redis.call('GET', KEYS[1]) or '0')
    if available > 0 then
        local remaining = redis.call('DECR', KEYS[1])
        return {1, remaining}
    end
    return {0, 0}
"""

# Compare-and-decrement that also writes the reservation lease.
# KEYS[1]: slot counter key
# KEYS[2]: reservation lease key
# ARGV[1]: lease TTL in seconds
# Returns {1, remaining} when a slot was taken, {0, 0} otherwise.
DECREMENT_AND_LEASE_SCRIPT = """
    local available = tonumber(redis.call('GET', KEYS[1]) or '0')
    if available > 0 then
        local remaining = redis.call('DECR', KEYS[1])
        redis.call('SET', KEYS[2], '1', 'EX', ARGV[1])
        return {1, remaining}
    end
    return {0, 0}
"""

# Drop a reservation lease and return its slot.
# KEYS[1]: reservation lease key
# KEYS[2]: slot counter key
# Returns {released, counter}; counter is -1 when it was not incremented.
# A missing counter is left missing: it is rebuilt from the durable store,
# which already accounts for the slot.
RELEASE_LEASE_SCRIPT = """
    if redis.call('DEL', KEYS[1]) == 0 then
        return {0, -1}
    end
    if redis.call('EXISTS', KEYS[2]) == 1 then
        return {1, redis.call('INCR', KEYS[2])}
    end
    return {1, -1}
"""

# Reset the counter to capacity minus live leases in one step.
# KEYS[1]: slot counter key
# ARGV[1]: lease key pattern
# ARGV[2]: slot capacity from the durable store
# Returns {previous, new, live}; previous is -1 when the counter was missing.
RESET_FROM_LEASES_SCRIPT = """
    local live = 0
    local cursor = '0'
    repeat
        local reply = redis.call('SCAN', cursor, 'MATCH', ARGV[1], 'COUNT', 500)
        cursor = reply[1]
        live = live + #reply[2]
    until cursor == '0'
    local previous = tonumber(redis.call('GET', KEYS[1]) or '-1')
    local target = tonumber(ARGV[2]) - live
    if target < 0 then
        target = 0
    end
    redis.call('SET', KEYS[1], target)
    return {previous, target, live}
"""
