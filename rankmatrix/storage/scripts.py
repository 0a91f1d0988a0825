"""Lua procedures executed atomically by Redis.

Every procedure is prefixed with a shared function library. Members of the
time-ordered and composite sets end with ``:<entity-id>`` and the entity's
current member is kept at ``<set-key>/ids/<entity-id>``.

``CLEAR_WITH_POINTERS``, ``RETRIEVE_ENTRY``, ``RETRIEVE_ENTRIES`` and
``AROUND_ENTRIES`` derive pointer keys inside the script instead of receiving
them in ``KEYS``, so they only run on a standalone Redis, not on Redis Cluster.
``CLEAR_WITH_POINTERS`` walks the whole set in one call and blocks the server
for O(N) while it runs.
"""

from __future__ import annotations

LIBRARY = """
local function pointer_key(key, id)
    return key .. '/ids/' .. id
end

local function member_id(member)
    local sep = string.find(member, ':', 1, true)
    if not sep then
        return member
    end
    return string.sub(member, sep + 1)
end

local function slice(items, first)
    local out = {}
    for i = first, #items do
        out[#out + 1] = items[i]
    end
    return out
end

local function ranked_range(key, low_to_high, low, high)
    if low_to_high then
        return redis.call('ZRANGE', key, low, high)
    end
    return redis.call('ZREVRANGE', key, low, high)
end

local function rank_of(key, low_to_high, member)
    if low_to_high then
        return redis.call('ZRANK', key, member)
    end
    return redis.call('ZREVRANK', key, member)
end

local function current_score(key, id)
    local member = redis.call('GET', pointer_key(key, id))
    if not member then
        return false
    end
    return redis.call('ZSCORE', key, member)
end

local function replace_member(key, pointer, old, new, score)
    if old then
        redis.call('ZREM', key, old)
    end
    redis.call('ZADD', key, score, new)
    redis.call('SET', pointer, new)
end

local function retrieve_entries(ranking, low_to_high, feature_keys, low, high)
    local members = ranked_range(ranking, low_to_high, low, high)
    local ids = {}
    for i, member in ipairs(members) do
        ids[i] = member_id(member)
    end
    local scores = {}
    for f, key in ipairs(feature_keys) do
        local column = {}
        for i, id in ipairs(ids) do
            column[i] = current_score(key, id)
        end
        scores[f] = column
    end
    return {ids, scores}
end

local function around_range(key, low_to_high, id, distance, fill_borders)
    local member = redis.call('GET', pointer_key(key, id))
    if not member then
        return false
    end
    local rank = rank_of(key, low_to_high, member)
    if not rank then
        return false
    end
    local last = redis.call('ZCARD', key) - 1
    local low, high = rank - distance, rank + distance
    if fill_borders then
        if low < 0 then
            high = math.min(last, high - low)
            low = 0
        elseif high > last then
            low = math.max(0, low - (high - last))
            high = last
        end
    else
        low = math.max(0, low)
        high = math.min(last, high)
    end
    return low, high
end
"""


def build_script(body: str) -> str:
    return LIBRARY + body


# KEYS: set, pointer. ARGV: timestamp, id, score
TIMESTAMPED_ADD = build_script("""
local old = redis.call('GET', KEYS[2])
replace_member(KEYS[1], KEYS[2], old, ARGV[1] .. ':' .. ARGV[2], ARGV[3])
return 1
""")

# KEYS: set, pointer. ARGV: timestamp, low_to_high, id, score
TIMESTAMPED_IMPROVE = build_script("""
local score = tonumber(ARGV[4])
local old = redis.call('GET', KEYS[2])
if old then
    local old_score = redis.call('ZSCORE', KEYS[1], old)
    if old_score then
        old_score = tonumber(old_score)
        if ARGV[2] == 'true' then
            if score >= old_score then
                return 0
            end
        elseif score <= old_score then
            return 0
        end
    end
end
replace_member(KEYS[1], KEYS[2], old, ARGV[1] .. ':' .. ARGV[3], ARGV[4])
return 1
""")

# KEYS: set, pointer. ARGV: timestamp, id, amount
# The total is formatted by ZINCRBY; Lua's tostring keeps only 14 digits.
TIMESTAMPED_INCR = build_script("""
local total = ARGV[3]
local old = redis.call('GET', KEYS[2])
if old and redis.call('ZSCORE', KEYS[1], old) then
    total = redis.call('ZINCRBY', KEYS[1], ARGV[3], old)
end
replace_member(KEYS[1], KEYS[2], old, ARGV[1] .. ':' .. ARGV[2], total)
return total
""")

# KEYS: set, pointer
TIMESTAMPED_REMOVE = build_script("""
local old = redis.call('GET', KEYS[2])
if not old then
    return 0
end
redis.call('ZREM', KEYS[1], old)
redis.call('DEL', KEYS[2])
return 1
""")

# KEYS: set
CLEAR_WITH_POINTERS = build_script("""
local members = redis.call('ZRANGE', KEYS[1], 0, -1)
for _, member in ipairs(members) do
    redis.call('DEL', pointer_key(KEYS[1], member_id(member)))
end
redis.call('DEL', KEYS[1])
return #members
""")

# KEYS: set, pointer. ARGV: expected current member ('' for none), new member
COMPOSITE_REPLACE = build_script("""
local current = redis.call('GET', KEYS[2])
if ARGV[1] == '' then
    if current then
        return 0
    end
elseif current ~= ARGV[1] then
    return 0
end
replace_member(KEYS[1], KEYS[2], current, ARGV[2], '0')
return 1
""")

# KEYS: feature sets. ARGV: id
RETRIEVE_ENTRY = build_script("""
local scores = {}
for i, key in ipairs(KEYS) do
    scores[i] = current_score(key, ARGV[1])
end
return scores
""")

# KEYS: ranking set, feature sets... ARGV: low_to_high, low, high (0-based)
RETRIEVE_ENTRIES = build_script("""
return retrieve_entries(KEYS[1], ARGV[1] == 'true', slice(KEYS, 2), tonumber(ARGV[2]), tonumber(ARGV[3]))
""")

# KEYS: ranking set, feature sets... ARGV: low_to_high, id, distance, fill_borders
AROUND_ENTRIES = build_script("""
local low_to_high = ARGV[1] == 'true'
local low, high = around_range(KEYS[1], low_to_high, ARGV[2], tonumber(ARGV[3]), ARGV[4] == 'true')
if not low then
    return {-1, {{}, {}}}
end
return {low, retrieve_entries(KEYS[1], low_to_high, slice(KEYS, 2), low, high)}
""")


def flag(value: bool) -> str:
    return "true" if value else "false"
