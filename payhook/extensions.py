from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter

from payhook.services.rate_limit import forwarded_for

db = SQLAlchemy()
migrate = Migrate()

# Storage and strategy are configured in create_app() via limiter.init_app(...).
limiter = Limiter(key_func=forwarded_for)
