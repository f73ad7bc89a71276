from flask import Flask, jsonify

from lablink.config import Config
from lablink.errors import register_error_handlers
from lablink.extensions import db, migrate, jwt, mail


def _import_models():
    # create_all / migrate tabloları görebilsin
    from lablink.models import (  # noqa: F401
        user, department, item, borrow, issued_item, return_request,
        borrow_message, notification, activity_log, scan_log,
        stock_reservation, outbox_event, mail_log,
    )


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # 1) Extension'lar
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)
    _import_models()

    # 2) Hata -> JSON
    register_error_handlers(app)

    # 3) API blueprintleri (url_prefix burada veriliyor, blueprint içinde tekrar verme)
    from lablink.controllers.auth_controller import auth_bp
    from lablink.controllers.item_controller import item_bp
    from lablink.controllers.borrow_controller import borrow_bp
    from lablink.controllers.return_controller import return_bp
    from lablink.controllers.notification_controller import notif_bp, message_bp, audit_bp
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(item_bp, url_prefix="/items")
    app.register_blueprint(borrow_bp, url_prefix="/borrow")
    app.register_blueprint(return_bp, url_prefix="/returns")
    app.register_blueprint(message_bp, url_prefix="/messages")
    app.register_blueprint(notif_bp, url_prefix="/notifications")
    app.register_blueprint(audit_bp, url_prefix="/audit")

    @app.get("/health")
    def health():
        return jsonify({"ok": True})

    # Scheduler (outbox relay + gecikme hatırlatma)
    from lablink.tasks.scheduler import start_scheduler
    start_scheduler(app)

    return app
