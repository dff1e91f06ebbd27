"""Database schema DDL for analysis jobs."""

ANALYSIS_JOBS_TABLE_DDL = """
CREATE TABLE analysis_jobs (
  id                     UUID PRIMARY KEY,
  project_id             TEXT NOT NULL,
  user_id                TEXT NOT NULL,
  document_id            TEXT,
  kind                   TEXT NOT NULL CHECK (kind IN (
                           'detect_entities', 'coherence_lint', 'clarity_check',
                           'policy_check', 'digest_document', 'embedding_generation')),

  status                 TEXT NOT NULL CHECK (status IN ('pending', 'processing', 'succeeded', 'failed')),
  attempts               INT NOT NULL DEFAULT 0,
  last_error             TEXT,

  scheduled_for          TIMESTAMPTZ NOT NULL,
  content_hash           TEXT,
  dedupe_key             TEXT,

  processing_run_id      TEXT,
  processing_started_at  TIMESTAMPTZ,
  lease_expires_at       TIMESTAMPTZ,

  payload                JSONB NOT NULL,
  result_summary         TEXT,
  result_ref             JSONB,
  dirty                  BOOLEAN NOT NULL DEFAULT FALSE,

  version                INT NOT NULL DEFAULT 0,
  created_at             TIMESTAMPTZ NOT NULL DEFAULT now(),
  updated_at             TIMESTAMPTZ NOT NULL DEFAULT now()
);

-- Due scan for pollers
CREATE INDEX idx_analysis_jobs_status_scheduled_for
ON analysis_jobs (status, scheduled_for);

CREATE INDEX idx_analysis_jobs_dedupe_key
ON analysis_jobs (dedupe_key);

-- At most one pending/processing job per admission slot
CREATE UNIQUE INDEX idx_analysis_jobs_active_dedupe_key
ON analysis_jobs (dedupe_key)
WHERE status IN ('pending', 'processing') AND dedupe_key IS NOT NULL;

-- Stale reclaim sweep
CREATE INDEX idx_analysis_jobs_expired_leases
ON analysis_jobs (lease_expires_at)
WHERE status = 'processing';

-- Retention sweep
CREATE INDEX idx_analysis_jobs_status_updated_at
ON analysis_jobs (status, updated_at);

CREATE INDEX idx_analysis_jobs_project_kind
ON analysis_jobs (project_id, kind);
"""

ACTIVE_DEDUPE_INDEX_NAME = "idx_analysis_jobs_active_dedupe_key"
