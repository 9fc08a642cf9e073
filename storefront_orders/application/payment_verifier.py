import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class PaymentVerifier:
    """Проверка подписи шлюза в callback оплаты.

    Шлюз подписывает ``"<gateway_order_id>|<gateway_payment_id>"`` через
    HMAC-SHA256 с секретом магазина и присылает hex digest.
    Неверная подпись это обычный результат: любая ошибка возвращает False,
    исключение не бросается.
    """

    def __init__(self, key_secret: Optional[str]):
        self._key_secret = key_secret

    def expected_signature(self, gateway_order_id: str, gateway_payment_id: str) -> str:
        body = f"{gateway_order_id}|{gateway_payment_id}"
        return hmac.new(
            self._key_secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def verify(self, gateway_order_id, gateway_payment_id, gateway_signature) -> bool:
        if not self._key_secret:
            logger.error("Секрет платежного шлюза не настроен, подпись отклонена")
            return False
        for value in (gateway_order_id, gateway_payment_id, gateway_signature):
            if not isinstance(value, str) or not value:
                logger.warning("Некорректный callback оплаты, подпись отклонена")
                return False
        try:
            supplied = gateway_signature.encode("ascii")
        except UnicodeEncodeError:
            logger.warning(f"Подпись не ASCII для заказа в шлюзе {gateway_order_id}")
            return False

        expected = self.expected_signature(gateway_order_id, gateway_payment_id).encode("ascii")
        if hmac.compare_digest(expected, supplied):
            return True
        logger.warning(f"Подпись не совпадает для заказа в шлюзе {gateway_order_id}")
        return False
