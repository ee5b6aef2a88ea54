# Overview: Flask extension instances (bound in create_app).

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Shared session; services flush, services.concurrency.transaction() commits
db = SQLAlchemy()
migrate = Migrate()
