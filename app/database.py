import aiosqlite

from app.config import settings

CREATE_BATCHES = """
CREATE TABLE IF NOT EXISTS batches (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    target_exam TEXT NOT NULL DEFAULT 'JEE',
    status TEXT NOT NULL DEFAULT 'upcoming',
    tags_json TEXT NOT NULL DEFAULT '[]',
    start_date TEXT,
    thumbnail_url TEXT,
    visibility TEXT NOT NULL DEFAULT 'public',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

CREATE_LECTURES = """
CREATE TABLE IF NOT EXISTS lectures (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    batch_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    subject TEXT NOT NULL,
    teacher_name TEXT NOT NULL,
    date_time TEXT,
    duration_minutes INTEGER NOT NULL DEFAULT 60,
    video_type TEXT NOT NULL DEFAULT 'recorded',
    video_url TEXT,
    notes_url TEXT,
    dpp_url TEXT,
    special_module_url TEXT,
    thumbnail_url TEXT,
    topic_tags_json TEXT NOT NULL DEFAULT '[]',
    is_locked INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (batch_id) REFERENCES batches(id)
)
"""

CREATE_TIMETABLES = """
CREATE TABLE IF NOT EXISTS timetables (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    batch_id INTEGER NOT NULL UNIQUE,
    week_range TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (batch_id) REFERENCES batches(id)
)
"""

CREATE_TIMETABLE_ENTRIES = """
CREATE TABLE IF NOT EXISTS timetable_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timetable_id INTEGER NOT NULL,
    day TEXT NOT NULL,
    time TEXT NOT NULL,
    subject TEXT NOT NULL,
    topic TEXT,
    teacher TEXT,
    lecture_id INTEGER,
    FOREIGN KEY (timetable_id) REFERENCES timetables(id)
)
"""

# One row per user: issuing a grant is an upsert on user_id.
CREATE_AD_ACCESS = """
CREATE TABLE IF NOT EXISTS ad_access (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL UNIQUE,
    granted_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
)
"""

CREATE_VERIFICATION_TOKENS = """
CREATE TABLE IF NOT EXISTS verification_tokens (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    token TEXT NOT NULL UNIQUE,
    expires_at TEXT NOT NULL,
    used INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending',
    verified_at TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

CREATE_NOTIFICATIONS = """
CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT,
    type TEXT NOT NULL DEFAULT 'general',
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    is_read INTEGER NOT NULL DEFAULT 0,
    batch_id INTEGER,
    lecture_id INTEGER,
    created_at TEXT NOT NULL
)
"""

CREATE_USER_ROLES = """
CREATE TABLE IF NOT EXISTS user_roles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL UNIQUE,
    role TEXT NOT NULL DEFAULT 'student'
)
"""

CREATE_BATCH_PASSWORDS = """
CREATE TABLE IF NOT EXISTS batch_access_passwords (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    batch_id INTEGER NOT NULL,
    password TEXT NOT NULL,
    valid_hours INTEGER NOT NULL DEFAULT 24,
    max_uses INTEGER NOT NULL DEFAULT 100,
    current_uses INTEGER NOT NULL DEFAULT 0,
    expires_at TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (batch_id) REFERENCES batches(id)
)
"""

CREATE_ENROLLMENTS = """
CREATE TABLE IF NOT EXISTS enrollments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    batch_id INTEGER NOT NULL,
    enrolled_via_password_id INTEGER,
    enrolled_at TEXT NOT NULL,
    FOREIGN KEY (batch_id) REFERENCES batches(id),
    UNIQUE(user_id, batch_id)
)
"""

CREATE_SUBJECTS = """
CREATE TABLE IF NOT EXISTS subjects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    icon TEXT,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

CREATE_TESTS = """
CREATE TABLE IF NOT EXISTS tests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    batch_id INTEGER,
    subject TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    pdf_url TEXT,
    duration_minutes INTEGER NOT NULL DEFAULT 60,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (batch_id) REFERENCES batches(id)
)
"""

CREATE_TEST_QUESTIONS = """
CREATE TABLE IF NOT EXISTS test_questions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    test_id INTEGER NOT NULL,
    question TEXT NOT NULL,
    question_image_url TEXT,
    option_a TEXT NOT NULL,
    option_a_image_url TEXT,
    option_b TEXT NOT NULL,
    option_b_image_url TEXT,
    option_c TEXT NOT NULL,
    option_c_image_url TEXT,
    option_d TEXT NOT NULL,
    option_d_image_url TEXT,
    correct_answer TEXT NOT NULL,
    explanation TEXT,
    sort_order INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (test_id) REFERENCES tests(id)
)
"""

CREATE_TEST_ATTEMPTS = """
CREATE TABLE IF NOT EXISTS test_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    test_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    answers_json TEXT NOT NULL DEFAULT '{}',
    score INTEGER NOT NULL,
    total_questions INTEGER NOT NULL,
    submitted_at TEXT NOT NULL,
    FOREIGN KEY (test_id) REFERENCES tests(id)
)
"""

CREATE_PERSONAL_MESSAGES = """
CREATE TABLE IF NOT EXISTS personal_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    from_user_id TEXT NOT NULL,
    to_user_id TEXT NOT NULL,
    message TEXT NOT NULL,
    is_read INTEGER NOT NULL DEFAULT 0,
    is_admin_message INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
)
"""

_DDL = [
    CREATE_BATCHES,
    CREATE_LECTURES,
    CREATE_TIMETABLES,
    CREATE_TIMETABLE_ENTRIES,
    CREATE_AD_ACCESS,
    CREATE_VERIFICATION_TOKENS,
    CREATE_NOTIFICATIONS,
    CREATE_USER_ROLES,
    CREATE_BATCH_PASSWORDS,
    CREATE_ENROLLMENTS,
    CREATE_SUBJECTS,
    CREATE_TESTS,
    CREATE_TEST_QUESTIONS,
    CREATE_TEST_ATTEMPTS,
    CREATE_PERSONAL_MESSAGES,
]


async def init_db() -> None:
    """Create all tables. Called once at server startup via FastAPI lifespan."""
    async with aiosqlite.connect(settings.database_path) as db:
        for stmt in _DDL:
            await db.execute(stmt)
        await db.commit()


async def get_async_conn() -> aiosqlite.Connection:
    """Async connection for use in FastAPI route handlers."""
    conn = await aiosqlite.connect(settings.database_path)
    await conn.execute("PRAGMA busy_timeout = 5000")
    conn.row_factory = aiosqlite.Row
    return conn
