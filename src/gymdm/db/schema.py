"""Database schema for season state."""

SCHEMA = """
-- One row per season; summary_json is written once when the season completes
CREATE TABLE IF NOT EXISTS seasons (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    season_number INTEGER NOT NULL DEFAULT 1,
    season_start TEXT,
    season_end TEXT,
    scheduled_start TEXT,
    stage TEXT NOT NULL DEFAULT 'PRE_STAGE',
    mode TEXT NOT NULL DEFAULT 'MONEY_SURVIVAL',
    weekly_target INTEGER NOT NULL DEFAULT 3,
    initial_lives INTEGER NOT NULL DEFAULT 3,
    initial_pot REAL NOT NULL DEFAULT 0,
    weekly_ante REAL NOT NULL DEFAULT 10,
    scaling_enabled INTEGER NOT NULL DEFAULT 0,
    per_player_boost REAL NOT NULL DEFAULT 0,
    sudden_death_enabled INTEGER NOT NULL DEFAULT 0,
    owner_user_id TEXT,
    summary_json TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Season membership
CREATE TABLE IF NOT EXISTS players (
    id TEXT PRIMARY KEY,
    season_id TEXT NOT NULL REFERENCES seasons(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    user_id TEXT,
    lives_remaining INTEGER NOT NULL DEFAULT 3,
    sudden_death INTEGER NOT NULL DEFAULT 0,
    ready INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Logged workouts; version guards dispute writes
CREATE TABLE IF NOT EXISTS activities (
    id TEXT PRIMARY KEY,
    season_id TEXT REFERENCES seasons(id) ON DELETE CASCADE,
    player_id TEXT NOT NULL,
    started_at TEXT NOT NULL,
    name TEXT,
    activity_type TEXT NOT NULL DEFAULT 'Workout',
    duration_minutes REAL NOT NULL DEFAULT 0,
    distance_km REAL NOT NULL DEFAULT 0,
    source TEXT NOT NULL DEFAULT 'manual',
    status TEXT NOT NULL DEFAULT 'approved',
    vote_deadline TEXT,
    decided_at TEXT,
    dispute_initiator_id TEXT,
    decision_reason TEXT,
    version INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- One vote per (activity, voter); re-voting overwrites
CREATE TABLE IF NOT EXISTS activity_votes (
    activity_id TEXT NOT NULL REFERENCES activities(id) ON DELETE CASCADE,
    voter_player_id TEXT NOT NULL,
    choice TEXT NOT NULL CHECK (choice IN ('legit', 'sus')),
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (activity_id, voter_player_id)
);

-- Append-only manual heart changes
CREATE TABLE IF NOT EXISTS heart_adjustments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    season_id TEXT NOT NULL REFERENCES seasons(id) ON DELETE CASCADE,
    season_number INTEGER NOT NULL DEFAULT 1,
    target_player_id TEXT NOT NULL,
    delta INTEGER NOT NULL,
    reason TEXT,
    created_by_user_id TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Weekly pot contributions, at most one row per week
CREATE TABLE IF NOT EXISTS pot_contributions (
    season_id TEXT NOT NULL REFERENCES seasons(id) ON DELETE CASCADE,
    season_number INTEGER NOT NULL DEFAULT 1,
    week_start TEXT NOT NULL,
    amount REAL NOT NULL DEFAULT 0,
    player_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (season_id, season_number, week_start)
);

-- Linked external accounts, by user or by player
CREATE TABLE IF NOT EXISTS external_credentials (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    provider TEXT NOT NULL DEFAULT 'strava',
    user_id TEXT,
    player_id TEXT,
    access_token TEXT NOT NULL,
    refresh_token TEXT,
    expires_at TEXT,
    token_type TEXT DEFAULT 'Bearer',
    scope TEXT,
    athlete_id TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Commentary and audit trail
CREATE TABLE IF NOT EXISTS history_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    season_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    payload_json TEXT NOT NULL DEFAULT '{}',
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_players_season ON players(season_id);
CREATE INDEX IF NOT EXISTS idx_players_user ON players(user_id);
CREATE INDEX IF NOT EXISTS idx_activities_season_status ON activities(season_id, status);
CREATE INDEX IF NOT EXISTS idx_activities_player ON activities(player_id);
CREATE INDEX IF NOT EXISTS idx_heart_adjustments_target ON heart_adjustments(season_id, season_number, target_player_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_credentials_user ON external_credentials(provider, user_id) WHERE user_id IS NOT NULL;
CREATE UNIQUE INDEX IF NOT EXISTS idx_credentials_player ON external_credentials(provider, player_id) WHERE player_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_history_season ON history_events(season_id);
"""
