import click
from flask import Flask
from flask_migrate import Migrate

from config import Config
from models import db
from routes import health_bp, auth_bp, users_bp, swaps_bp
from security.pipeline import install_pipeline
from services import init_services, get_auth_service
from storage import init_storage
from utils.errors import register_error_handlers
from utils.logging_setup import configure_logging



def create_app(config_object=Config, overrides=None, counter_store=None):
    app = Flask(__name__)
    app.config.from_object(config_object)
    if overrides:
        app.config.update(overrides)

    configure_logging(app)

    # Database init (SQL storage backend, SQL counter store, audit rows)
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Security chain runs before every blueprint
    install_pipeline(app, counter_store=counter_store)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(swaps_bp)

    register_error_handlers(app)

    storage = init_storage(app)
    init_services(app, storage)

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("init-storage")
    def init_storage_cmd():
        """Create the data files or database tables for the configured backend."""
        if app.config.get("STORAGE_BACKEND") == "sql" or app.config.get("RATE_LIMIT_STORAGE") == "sql":
            db.create_all()
            print("Database tables created")
        if app.config.get("STORAGE_BACKEND", "json") == "json":
            print(f"JSON data files ready in {app.config['DATA_DIR']}")

    @app.cli.command("unlock-account")
    @click.argument("email")
    def unlock_account(email):
        """Clear failed-login counters and the lock on an account."""
        if not get_auth_service().unlock_account(email):
            print("User not found")
            return
        print(f"{email.strip().lower()} unlocked")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=app.config["PORT"])
