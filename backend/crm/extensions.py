# Overview: Shared Flask-SQLAlchemy and Flask-Migrate instances, bound in create_app().

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Every model, service and the change feed share this session registry
db = SQLAlchemy()
migrate = Migrate(compare_type=True)
