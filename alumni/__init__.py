import os
import logging
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from dotenv import load_dotenv

# Load environment variables (override=True ensures .env values take precedence)
load_dotenv(override=True)

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()


def create_app(config_name=None, config_overrides=None):
    """Application factory pattern."""
    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-me')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///dev.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # Bearer tokens are issued by the auth service and signed with SECRET_KEY
    app.config['AUTH_TOKEN_MAX_AGE'] = int(os.environ.get('AUTH_TOKEN_MAX_AGE', 7 * 24 * 3600))

    # App URL used in emails (defaults to localhost for dev, must be set in production)
    app.config['APP_URL'] = os.environ.get('APP_URL', 'http://localhost:5000')

    # Email (Brevo) and payments (Stripe)
    app.config['BREVO_API_KEY'] = os.environ.get('BREVO_API_KEY')
    app.config['EMAIL_SENDER_NAME'] = os.environ.get('EMAIL_SENDER_NAME', 'Alumni Network')
    app.config['EMAIL_SENDER_ADDRESS'] = os.environ.get('EMAIL_SENDER_ADDRESS', 'noreply@alumninetwork.org')
    app.config['STRIPE_SECRET_KEY'] = os.environ.get('STRIPE_SECRET_KEY')
    app.config['STRIPE_WEBHOOK_SECRET'] = os.environ.get('STRIPE_WEBHOOK_SECRET')

    if config_name == 'testing':
        app.config['TESTING'] = True
        app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite://'
        app.config['SECRET_KEY'] = 'testing-secret-key'

    if config_overrides:
        app.config.update(config_overrides)

    # Fix for postgres:// vs postgresql:// (some providers use older postgres:// format)
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('postgres://'):
        app.config['SQLALCHEMY_DATABASE_URI'] = app.config['SQLALCHEMY_DATABASE_URI'].replace(
            'postgres://', 'postgresql://', 1
        )

    app.logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())
    logging.getLogger('alumni.client').setLevel(app.logger.level)

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db)

    # Register blueprints
    from alumni.routes.main import main_bp
    from alumni.routes.events import events_bp
    from alumni.routes.me import me_bp
    from alumni.routes.payments import payments_bp
    from alumni.routes.admin import admin_bp
    app.register_blueprint(main_bp)
    app.register_blueprint(events_bp)
    app.register_blueprint(me_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(admin_bp)

    from alumni.errors import register_error_handlers
    register_error_handlers(app)

    from alumni.commands import register_commands
    register_commands(app)

    # Import models so they're known to Flask-Migrate
    from alumni import models

    return app
