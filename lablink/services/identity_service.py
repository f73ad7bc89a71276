import json
from dataclasses import dataclass

from flask import current_app

from lablink.errors import NotFound, ValidationError
from lablink.extensions import db
from lablink.models.item import Item, ItemUnit
from lablink.models.scan_log import ScanLog
from lablink.repositories.item_repo import ItemRepo
from lablink.utils.clock import epoch_ms

QR_TYPE = "lablink_item"


@dataclass
class Resolution:
    item: Item
    unit: ItemUnit | None = None

    def to_dict(self) -> dict:
        return {
            "item_id": self.item.id,
            "item_code": self.item.item_code,
            "item_name": self.item.name,
            "unit_id": self.unit.id if self.unit else None,
            "serial_number": self.unit.serial_number if self.unit else None,
            "unit_status": self.unit.status if self.unit else None,
        }


def build_qr_payload(item: Item, unit: ItemUnit | None = None) -> str:
    """Etiket basımı için QR içeriği."""
    data = {
        "type": QR_TYPE,
        "id": unit.id if unit else item.id,
        "code": unit.serial_number if unit else item.item_code,
        "ts": epoch_ms(),
    }
    if unit:
        data["item_id"] = item.id
    return json.dumps(data)


class IdentityService:
    @staticmethod
    def _keys(raw: str):
        """
        (code, id) çifti döner.
        JSON değilse (ya da JSON ama obje değilse) ham metin hem kod hem id adayıdır.
        """
        try:
            data = json.loads(raw)
        except ValueError:
            data = None
        if isinstance(data, dict):
            code = data.get("code")
            ident = data.get("id")
            return (str(code).strip() if code else None), (str(ident).strip() if ident else None)
        return raw, raw

    @staticmethod
    def _lookup(code: str | None, ident: str | None):
        # kod önce: önce ürün kodu, sonra birim seri no
        if code:
            item = ItemRepo.get_by_code(code)
            if item:
                return Resolution(item=item)
            unit = ItemRepo.get_unit_by_serial(code)
            if unit:
                return Resolution(item=unit.item, unit=unit)
        if ident:
            item = ItemRepo.get(ident)
            if item:
                return Resolution(item=item)
            unit = ItemRepo.get_unit(ident)
            if unit:
                return Resolution(item=unit.item, unit=unit)
        return None

    @staticmethod
    def _log_scan(raw, result: str, resolution: Resolution | None, actor_id, device_info):
        """Tarama kaydı kendi commit'inde; hata olursa çözümlemeyi bozmaz."""
        try:
            db.session.add(ScanLog(
                item_id=resolution.item.id if resolution else None,
                unit_id=resolution.unit.id if resolution and resolution.unit else None,
                scanned_by=actor_id,
                scan_result=result,
                raw_payload=(raw or "")[:1000],
                device_info=device_info,
            ))
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            current_app.logger.warning(f"[identity] scan log yazılamadı: {e}")

    @staticmethod
    def resolve(payload, actor_id: str | None = None, device_info: dict | None = None) -> Resolution:
        raw = payload.strip() if isinstance(payload, str) else ""
        if not raw:
            IdentityService._log_scan(raw, "invalid", None, actor_id, device_info)
            raise ValidationError("QR içeriği boş")

        code, ident = IdentityService._keys(raw)
        resolution = IdentityService._lookup(code, ident)
        if resolution is None:
            IdentityService._log_scan(raw, "not_found", None, actor_id, device_info)
            raise NotFound("QR koduna karşılık gelen ürün bulunamadı")

        IdentityService._log_scan(raw, "success", resolution, actor_id, device_info)
        return resolution
