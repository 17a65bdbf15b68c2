import pytest

from billing.config import _validate_config, config_path, load_billing_config


def test_load_billing_config_defaults():
    settings = load_billing_config()
    assert settings.default_currency == "LKR"
    assert settings.minor_unit_exponent("usd") == 2
    assert settings.minor_unit_exponent("JPY") == 0
    assert settings.prefix_for("invoice") == "INV"
    assert settings.prefix_for("credit_note") == "CN"
    assert settings.supports("eur")
    assert not settings.supports("XYZ")


def test_load_billing_config_caches():
    first = load_billing_config()
    second = load_billing_config()
    assert first is second


def test_config_path_override(monkeypatch, tmp_path):
    target = tmp_path / "billing.yaml"
    monkeypatch.setenv("BILLING_CONFIG_PATH", str(target))
    assert config_path() == target


def test_override_file_is_loaded(monkeypatch, tmp_path):
    target = tmp_path / "billing.yaml"
    target.write_text(
        "default_currency: usd\n"
        "currencies:\n  usd: 2\n"
        "payment_tolerance_minor: 5\n"
        "numbering:\n"
        "  quotation: Q\n  invoice: I\n  proforma: P\n  payment: R\n  credit_note: C\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("BILLING_CONFIG_PATH", str(target))
    load_billing_config.cache_clear()
    try:
        settings = load_billing_config()
        assert settings.default_currency == "USD"
        assert settings.currencies == {"USD": 2}
        assert settings.payment_tolerance_minor == 5
        assert settings.prefix_for("quotation") == "Q"
    finally:
        monkeypatch.delenv("BILLING_CONFIG_PATH")
        load_billing_config.cache_clear()


@pytest.mark.parametrize(
    "raw, fragment",
    [
        ({"currencies": {"USD": 2}, "numbering": {}}, "default_currency"),
        (
            {
                "default_currency": "USD",
                "currencies": {"USD": 2},
                "numbering": {"quotation": "QT", "invoice": "INV"},
            },
            "numbering.proforma",
        ),
        (
            {
                "default_currency": "USD",
                "currencies": {"USD": -1},
                "numbering": {k: "X" for k in ("quotation", "invoice", "proforma", "payment", "credit_note")},
            },
            "USD",
        ),
        (
            {
                "default_currency": "EUR",
                "currencies": {"USD": 2},
                "numbering": {k: "X" for k in ("quotation", "invoice", "proforma", "payment", "credit_note")},
            },
            "EUR",
        ),
    ],
)
def test_validate_config_rejects_malformed(raw, fragment):
    with pytest.raises(ValueError) as excinfo:
        _validate_config(raw)
    assert fragment in str(excinfo.value)
