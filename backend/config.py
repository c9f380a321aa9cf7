import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Comma separated list of origins allowed to open a socket
    CORS_ORIGINS = [o.strip() for o in os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173',
    ).split(',') if o.strip()]
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/')
    # Session budgets
    SESSION_DURATION_SEC = float(os.environ.get('SESSION_DURATION_SEC', '120'))
    MAX_MESSAGES = int(os.environ.get('MAX_MESSAGES', '12'))
    # How long a lone human waits before being paired with an AI partner
    AI_FALLBACK_WAIT_SEC = float(os.environ.get('AI_FALLBACK_WAIT_SEC', '3'))
    # Matchmaking retry cadence for a waiting human
    MATCH_RETRY_SEC = float(os.environ.get('MATCH_RETRY_SEC', '3'))
    # Simulated typing latency for AI replies
    AI_REPLY_DELAY_MIN_SEC = float(os.environ.get('AI_REPLY_DELAY_MIN_SEC', '0.8'))
    AI_REPLY_DELAY_MAX_SEC = float(os.environ.get('AI_REPLY_DELAY_MAX_SEC', '2.0'))
    # Turns of conversation kept as generation context
    HISTORY_LENGTH = int(os.environ.get('HISTORY_LENGTH', '6'))
    # Ended sessions linger this long so in-flight notices can land
    SESSION_GRACE_SEC = float(os.environ.get('SESSION_GRACE_SEC', '1'))
    # Gemini generation backend. No key disables generation (canned replies only)
    GEMINI_API_KEY = os.environ.get('GEMINI_API_KEY')
    GEMINI_MODEL = os.environ.get('GEMINI_MODEL', 'gemini-1.5-flash')
    PROFANITY_WORDS = [w.strip() for w in os.environ.get(
        'PROFANITY_WORDS', 'badword1,badword2,badword3'
    ).split(',') if w.strip()]
