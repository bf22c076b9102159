from flask import Flask

from smartmark.api import api_bp
from smartmark.auth import auth_bp
from smartmark.auth.provider import OAuthIdentityProvider
from smartmark.config import Config
from smartmark.extensions import db, login_manager, migrate
from smartmark.jobs.scheduler import start_scheduler


def create_app(config_object=Config, identity_provider=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.extensions["identity_provider"] = (
        identity_provider or OAuthIdentityProvider.from_config(app.config)
    )

    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        print("Initialized smartmark database.")

    with app.app_context():
        db.create_all()

    start_scheduler(app)
    return app
