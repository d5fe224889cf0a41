"""Database schema DDL for the fan-out job pipeline."""

JOB_QUEUE_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS job_queue (
  id              BIGSERIAL PRIMARY KEY,
  queue_name      TEXT NOT NULL,
  tenant_id       TEXT NOT NULL,
  job_key         TEXT NOT NULL,
  payload         JSONB NOT NULL DEFAULT '{}'::jsonb,

  delivery_count  INT NOT NULL DEFAULT 0,
  enqueued_at     TIMESTAMPTZ NOT NULL DEFAULT now(),
  visible_at      TIMESTAMPTZ NOT NULL DEFAULT now()
);

-- Visibility scan used by read_batch
CREATE INDEX IF NOT EXISTS idx_job_queue_visible
ON job_queue (queue_name, visible_at, id);

CREATE INDEX IF NOT EXISTS idx_job_queue_tenant_key
ON job_queue (queue_name, tenant_id, job_key);
"""

JOB_LOG_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS job_log (
  id              BIGSERIAL PRIMARY KEY,
  tenant_id       TEXT NOT NULL,
  job_key         TEXT NOT NULL,
  status          TEXT NOT NULL CHECK (status IN ('queued', 'processing', 'completed', 'failed', 'dead_lettered')),
  attempt         INT NOT NULL DEFAULT 1,
  message_id      TEXT,
  error_message   TEXT,
  duration_ms     INT,
  noop            BOOLEAN NOT NULL DEFAULT FALSE,
  note            TEXT,
  created_at      TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_job_log_tenant_key
ON job_log (tenant_id, job_key, created_at);

CREATE INDEX IF NOT EXISTS idx_job_log_key_status
ON job_log (job_key, status);

CREATE INDEX IF NOT EXISTS idx_job_log_created_at
ON job_log (created_at);

-- At most one real completion per tenant and job key
CREATE UNIQUE INDEX IF NOT EXISTS idx_job_log_one_real_completion
ON job_log (tenant_id, job_key)
WHERE status = 'completed' AND NOT noop;
"""

JOB_QUEUE_DEPTH_SAMPLES_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS job_queue_depth_samples (
  id              BIGSERIAL PRIMARY KEY,
  queue_name      TEXT NOT NULL,
  pending_count   INT NOT NULL,
  oldest_age      DOUBLE PRECISION,
  sampled_at      TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_job_queue_depth_samples_queue_time
ON job_queue_depth_samples (queue_name, sampled_at);
"""

JOB_ALERTS_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS job_alerts (
  id              BIGSERIAL PRIMARY KEY,
  tenant_id       TEXT NOT NULL,
  title           TEXT NOT NULL,
  description     TEXT NOT NULL,
  severity        TEXT NOT NULL,
  status          TEXT NOT NULL DEFAULT 'open' CHECK (status IN ('open', 'resolved')),
  meta            JSONB NOT NULL DEFAULT '{}'::jsonb,
  created_at      TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_job_alerts_tenant_status
ON job_alerts (tenant_id, status);
"""


def get_ddl() -> str:
    """Return the full schema, safe to apply more than once."""
    return "\n".join(
        [
            JOB_QUEUE_TABLE_DDL,
            JOB_LOG_TABLE_DDL,
            JOB_QUEUE_DEPTH_SAMPLES_TABLE_DDL,
            JOB_ALERTS_TABLE_DDL,
        ]
    )
