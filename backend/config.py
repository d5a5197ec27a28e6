import os


def _origins(raw):
    return [o.strip() for o in raw.split(',') if o.strip()]


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///quizarena.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Browser origins allowed for HTTP and Socket.IO
    CORS_ORIGINS = _origins(os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000',
    ))
    # Room timing (milliseconds). Server-side values are authoritative.
    COUNTDOWN_DURATION_MS = int(os.environ.get('COUNTDOWN_DURATION_MS', '5000'))
    QUESTION_TIME_MS = int(os.environ.get('QUESTION_TIME_MS', '10000'))
    REVEAL_DELAY_MS = int(os.environ.get('REVEAL_DELAY_MS', '3000'))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
