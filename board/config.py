import os

DATABASE_URL = os.getenv('DATABASE_URL') or 'sqlite+aiosqlite:///./board.db'

# Hosted service credentials, only read by the REST backend
BOARD_URL = os.getenv('BOARD_URL', 'http://localhost:54321')
BOARD_ANON_KEY = os.getenv('BOARD_ANON_KEY', '')

BACKEND = os.getenv('BOARD_BACKEND', 'local')
FEED_VARIANT = os.getenv('BOARD_FEED_VARIANT', 'threaded')
ANONYMOUS_NAME = os.getenv('BOARD_ANONYMOUS_NAME', '匿名ユーザー')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
METRICS_PORT = int(os.getenv('METRICS_PORT', '8001'))
