import logging

from flask import Flask
from config import Config
from routes import ALL_BLUEPRINTS

from models import db
from flask_migrate import Migrate


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Register routes
    for blueprint in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # API responses; the two /pay pages only need inline styles
        resp.headers["Content-Security-Policy"] = "default-src 'none'; style-src 'unsafe-inline'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
import click
from domain.catalog import build_coupon
from domain.drafts import DraftStore
from domain.errors import ValidationFailed
from utils.seed import seed_catalog


def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables (development; use `flask db upgrade` elsewhere)."""
        db.create_all()
        print("Tables created")

    @app.cli.command("seed-catalog")
    def seed_catalog_command():
        """Insert the default rooms, services and yoga sessions."""
        added = seed_catalog()
        print(f"{added} catalog item(s) added")

    @app.cli.command("create-coupon")
    @click.argument("code")
    @click.option("--type", "discount_type", type=click.Choice(["fixed", "percentage"]), default="fixed")
    @click.option("--value", "discount_value", type=int, required=True)
    @click.option("--max-discount", type=int, default=None)
    @click.option("--min-order", type=int, default=0)
    @click.option("--service-type", type=click.Choice(["airport", "yoga", "rental", "adventure", "all"]), default="all")
    @click.option("--valid-until", default=None, help="ISO date")
    @click.option("--usage-limit", type=int, default=None)
    @click.option("--per-phone-limit", type=int, default=None)
    def create_coupon(code, discount_type, discount_value, max_discount, min_order, service_type,
                      valid_until, usage_limit, per_phone_limit):
        """Create a coupon (bootstrap)."""
        try:
            coupon = build_coupon({
                "code": code,
                "discountType": discount_type,
                "discountValue": discount_value,
                "maxDiscount": max_discount,
                "minOrderValue": min_order,
                "serviceType": service_type,
                "validUntil": valid_until,
                "usageLimit": usage_limit,
                "perPhoneLimit": per_phone_limit,
            })
        except ValidationFailed as exc:
            raise click.ClickException(str(exc))

        db.session.add(coupon)
        db.session.commit()
        print(f"Coupon {coupon.code} created")

    @app.cli.command("purge-drafts")
    def purge_drafts():
        """Delete expired booking drafts."""
        removed = DraftStore().purge_expired()
        print(f"{removed} expired draft(s) removed")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
