"""設定"""

import pytest

from pos_order.config import Settings


@pytest.mark.parametrize("raw, expected", [("true", True), ('"1"', True), ("off", False), ("False", False)])
def test_debug_accepts_strings(raw, expected):
    assert Settings(DEBUG=raw).DEBUG is expected


def test_defaults():
    s = Settings()
    assert s.CUSTOMERS_PAGE_SIZE == 20
    assert s.SALE_UNIT_ID == 116
    assert s.SALE_OPERATION == "Заказ"
    assert s.HTTP_TIMEOUT is None
