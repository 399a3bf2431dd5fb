import json
from decimal import Decimal

from retailpos.cart import CART_STORAGE_KEY, CartStore, CustomerRef, JsonFileCartPersistence, ProductSnapshot


def _product():
    return ProductSnapshot(
        id=7,
        name="Aqua 600ml",
        price=Decimal("3500"),
        carton_price=Decimal("80000"),
        pcs_per_carton=24,
        supports_carton=True,
        stock=240,
    )


class TestJsonFileCartPersistence:
    def test_round_trip_through_a_new_store(self, tmp_path):
        path = tmp_path / "cart.json"
        store = CartStore(JsonFileCartPersistence(path))
        store.add_item(_product(), Decimal("250"))
        store.update_unit_type(7, "CARTON")
        store.set_customer(CustomerRef(id=3, name="Sari", tier_level="GOLD"))
        store.set_global_discount(Decimal("1000"))

        reloaded = CartStore(JsonFileCartPersistence(path))

        assert reloaded.state == store.state
        assert reloaded.get_total() == store.get_total()

    def test_document_shape(self, tmp_path):
        path = tmp_path / "cart.json"
        CartStore(JsonFileCartPersistence(path)).add_item(_product())

        document = json.loads(path.read_text(encoding="utf-8"))

        assert set(document) == {CART_STORAGE_KEY}
        assert document[CART_STORAGE_KEY]["version"] == 0
        assert document[CART_STORAGE_KEY]["state"]["items"][0]["quantity"] == 1

    def test_other_keys_in_the_file_survive(self, tmp_path):
        path = tmp_path / "cart.json"
        path.write_text(json.dumps({"terminal-prefs": {"theme": "dark"}}), encoding="utf-8")

        CartStore(JsonFileCartPersistence(path)).add_item(_product())

        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["terminal-prefs"] == {"theme": "dark"}

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "cart.json"
        path.write_text("{not json", encoding="utf-8")

        store = CartStore(JsonFileCartPersistence(path))

        assert store.is_empty

    def test_invalid_stored_item_is_discarded(self, tmp_path):
        path = tmp_path / "cart.json"
        path.write_text(json.dumps({
            CART_STORAGE_KEY: {"state": {"items": [{"product": {"id": 1}, "quantity": 1}]}, "version": 0}
        }), encoding="utf-8")

        assert JsonFileCartPersistence(path).load() is None

    def test_missing_file_loads_nothing(self, tmp_path):
        assert JsonFileCartPersistence(tmp_path / "absent.json").load() is None
