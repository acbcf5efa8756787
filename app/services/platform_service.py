from decimal import Decimal, InvalidOperation

from flask import current_app

from app.errors import ValidationError
from app.extensions import cache, db
from app.models import PlatformSetting
from app.services.pricing_engine import PricingConfig

PRICING_CACHE_KEY = "platform:pricing"

# key -> (config default, label)
PRICING_SETTINGS = {
    "travel_charge_per_km": ("DEFAULT_TRAVEL_CHARGE_PER_KM", "Travel charge per km"),
    "base_radius_km": ("DEFAULT_BASE_RADIUS_KM", "Free travel radius (km)"),
    "gst_percentage": ("DEFAULT_GST_PERCENTAGE", "GST percentage"),
}


class PlatformService:
    @staticmethod
    def get_setting(key, default=None):
        setting = db.session.get(PlatformSetting, key)
        if not setting:
            return default
        return setting.value

    @staticmethod
    def get_decimal(key, default):
        raw = PlatformService.get_setting(key, str(default))
        try:
            return Decimal(str(raw))
        except InvalidOperation:
            current_app.logger.warning("Setting %s has non-numeric value %r; using default.", key, raw)
            return Decimal(str(default))

    @staticmethod
    def set_setting(key, value, updated_by_id=None, label=None, category="general"):
        setting = db.session.get(PlatformSetting, key)
        if setting:
            setting.value = str(value)
            setting.updated_by_id = updated_by_id
        else:
            setting = PlatformSetting(
                key=key,
                value=str(value),
                label=label,
                category=category,
                updated_by_id=updated_by_id,
            )
            db.session.add(setting)
        return setting

    @staticmethod
    def seed_defaults():
        created = 0
        for key, (config_key, label) in PRICING_SETTINGS.items():
            if db.session.get(PlatformSetting, key) is None:
                db.session.add(
                    PlatformSetting(
                        key=key,
                        value=str(current_app.config[config_key]),
                        label=label,
                        category="pricing",
                    )
                )
                created += 1
        if created:
            db.session.commit()
            current_app.logger.info("Seeded %s pricing settings.", created)
        return created

    @staticmethod
    def pricing_config():
        cached = cache.get(PRICING_CACHE_KEY)
        if cached is None:
            cached = {
                key: str(PlatformService.get_decimal(key, current_app.config[config_key]))
                for key, (config_key, _label) in PRICING_SETTINGS.items()
            }
            cache.set(PRICING_CACHE_KEY, cached)
        return PricingConfig.from_values(**cached)

    @staticmethod
    def set_pricing_config(values, updated_by_id=None):
        unknown = set(values) - set(PRICING_SETTINGS)
        if unknown:
            raise ValidationError(f"Unknown pricing setting(s): {', '.join(sorted(unknown))}.")

        current = PlatformService.pricing_config().as_dict()
        current.update({key: value for key, value in values.items() if value is not None})
        config = PricingConfig.from_values(**current)

        for key, value in config.as_dict().items():
            PlatformService.set_setting(
                key,
                value,
                updated_by_id=updated_by_id,
                label=PRICING_SETTINGS[key][1],
                category="pricing",
            )
        db.session.commit()
        cache.delete(PRICING_CACHE_KEY)
        current_app.logger.info("Pricing settings updated by %s: %s", updated_by_id, config.as_dict())
        return config
