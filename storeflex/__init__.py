"""Flask application factory."""
import logging
import os

from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError

from storeflex.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=logging.DEBUG if app.config.get('DEBUG') else logging.INFO,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    # CSRF protection (clients fetch a token from /auth/csrf-token)
    CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Session expired. Reload and try again.'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache for dashboard / moneyflow / report views
    from storeflex.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from storeflex.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust the reverse proxy headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    init_db(app)

    # Load user and tenant context before each request
    from storeflex.middleware import load_user_and_tenant

    @app.before_request
    def before_request_handler():
        load_user_and_tenant()

    # Error handlers
    from storeflex.exceptions import StoreflexError

    @app.errorhandler(StoreflexError)
    def handle_storeflex_error(error):
        """Handle custom application exceptions."""
        log = app.logger.error if error.status_code >= 500 else app.logger.warning
        log(f"StoreflexError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Unhandled error on {request.method} {request.path}: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from storeflex.blueprints.auth import auth_bp
    from storeflex.blueprints.account import account_bp
    from storeflex.blueprints.products import products_bp
    from storeflex.blueprints.parties import customers_bp, suppliers_bp
    from storeflex.blueprints.sales import sales_bp
    from storeflex.blueprints.purchases import purchases_bp
    from storeflex.blueprints.moneyflow import moneyflow_bp
    from storeflex.blueprints.orders import orders_bp
    from storeflex.blueprints.expenses import expenses_bp
    from storeflex.blueprints.reports import reports_bp
    from storeflex.blueprints.ai import ai_bp
    from storeflex.blueprints.metrics import metrics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(account_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(moneyflow_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(ai_bp)
    app.register_blueprint(metrics_bp)

    from storeflex.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
