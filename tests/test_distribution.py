import unittest

from app.core.errors import AddressResolutionError
from app.services.distribution import (
    add_distribution_to_cart,
    merge_distribution_lines,
    validate_distribution,
)
from fake_pressero import FakePressero

SITE = "shop.pressero.com"
WARNING = "ReOrderFullSuccess_PriceWarning"


class TestMergeDistributionLines(unittest.TestCase):
    def test_same_place_quantities_summed(self):
        lines = [
            {"address": "10 Rue Neuve", "zip": "69000", "city": "Lyon", "country": "FR", "qty": 2},
            {"address": "10 rue neuve", "zip": "69000", "city": "LYON", "qty": "3"},
        ]
        merged = merge_distribution_lines(lines)
        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0]["qty"], 5)
        self.assertEqual(merged[0]["address"], "10 Rue Neuve")
        self.assertEqual(merged[0]["country"], "FR")

    def test_drops_invalid_lines(self):
        lines = [
            {"address": "1 Rue X", "zip": "75001", "city": "Paris", "qty": 0},
            {"address": "1 Rue X", "zip": "75001", "city": "Paris", "qty": -4},
            {"address": "1 Rue X", "zip": "75001", "city": "Paris", "qty": "abc"},
            {"address": "1 Rue X", "zip": "75001", "city": "Paris"},
            {"address": "", "zip": "75001", "city": "Paris", "qty": 1},
            {"address": "1 Rue X", "city": "Paris", "qty": 1},
            {"address": "1 Rue X", "zip": "75001", "qty": 1},
            "not a line",
            None,
        ]
        self.assertEqual(merge_distribution_lines(lines), [])

    def test_accepts_address_book_field_names(self):
        lines = [{"Address1": "1 Main", "Postal": "1000", "City": "Brussels", "Country": "be", "quantity": "2.0"}]
        merged = merge_distribution_lines(lines)
        self.assertEqual(merged, [{"address": "1 Main", "zip": "1000", "city": "Brussels", "country": "BE", "qty": 2}])

    def test_country_default(self):
        merged = merge_distribution_lines([{"address": "1 Main", "zip": "1000", "city": "Town", "qty": 1}], "be")
        self.assertEqual(merged[0]["country"], "BE")

    def test_different_countries_stay_separate(self):
        lines = [
            {"address": "1 Main", "zip": "1000", "city": "Town", "country": "BE", "qty": 1},
            {"address": "1 Main", "zip": "1000", "city": "Town", "country": "FR", "qty": 1},
        ]
        self.assertEqual(len(merge_distribution_lines(lines)), 2)

    def test_non_list_input(self):
        self.assertEqual(merge_distribution_lines(None), [])
        self.assertEqual(merge_distribution_lines({"address": "1 Main"}), [])


class TestValidateDistribution(unittest.TestCase):
    def test_existing_addresses_reused(self):
        client = FakePressero(addresses=[
            {"AddressId": "old-1", "Business": "Someone", "Address1": "10 Rue Neuve", "Postal": "69000", "City": "Lyon", "Country": "FR"},
        ])
        lines = merge_distribution_lines([{"address": "10 rue neuve", "zip": "69000", "city": "lyon", "qty": 2}])
        validated = validate_distribution(client, SITE, "user-1", lines)
        self.assertEqual(validated[0]["addressId"], "old-1")
        self.assertEqual(validated[0]["qty"], 2)
        self.assertEqual(client.count("create_address"), 0)
        self.assertEqual(client.count("get_address_book"), 1)

    def test_missing_addresses_created_once(self):
        client = FakePressero()
        lines = [
            {"address": "10 Rue Neuve", "zip": "69000", "city": "Lyon", "country": "FR", "qty": 1},
            {"address": "11 Rue Neuve", "zip": "69000", "city": "Lyon", "country": "FR", "qty": 1},
        ]
        validated = validate_distribution(client, SITE, "user-1", lines)
        self.assertEqual([v["addressId"] for v in validated], ["addr-1", "addr-2"])
        self.assertEqual(client.created[0]["Business"], "Distribution")

        # a second pass finds everything
        again = validate_distribution(client, SITE, "user-1", lines)
        self.assertEqual([v["addressId"] for v in again], ["addr-1", "addr-2"])
        self.assertEqual(client.count("create_address"), 2)

    def test_country_falls_back_to_preferred(self):
        client = FakePressero(preferred={"AddressId": "pref-1", "Address1": "1 Main", "Postal": "1000", "City": "Brussels", "Country": "BE"})
        validate_distribution(client, SITE, "user-1", [{"address": "2 Main", "zip": "1000", "city": "Brussels", "qty": 1}])
        self.assertEqual(client.created[0]["Country"], "BE")

    def test_unresolvable_line_aborts(self):
        client = FakePressero()
        client.hide_created = True
        lines = [{"address": "10 Rue Neuve", "zip": "69000", "city": "Lyon", "country": "FR", "qty": 1}]
        with self.assertRaises(AddressResolutionError) as ctx:
            validate_distribution(client, SITE, "user-1", lines)
        self.assertIn("10 Rue Neuve / 69000 / Lyon", ctx.exception.message)


class TestAddDistributionToCart(unittest.TestCase):
    def _add(self, client, lines, **kwargs):
        return add_distribution_to_cart(
            client,
            SITE,
            "user-1",
            url_name="flyer-a5",
            shipping_method="Standard",
            pricing_options=[{"Name": "Paper", "Value": "Gloss"}],
            lines=lines,
            price_warning=WARNING,
            **kwargs,
        )

    def test_one_item_per_line(self):
        client = FakePressero()
        out = self._add(
            client,
            [{"addressId": "a1", "qty": 3, "label": "Shop 1"}, {"addressId": "a2", "qty": "2"}],
            other_quantities=[1],
        )
        self.assertTrue(out["ok"])
        self.assertEqual(out["cartId"], "cart-1")
        self.assertEqual(out["added"], 2)
        self.assertEqual(len(client.cart_items), 2)

        first = client.cart_items[0]
        self.assertEqual(first["ProductId"], "product-1")
        self.assertEqual(first["ShipTo"], "a1")
        self.assertEqual(first["ShippingMethod"], "Standard")
        self.assertEqual(first["PricingParameters"], {"Quantities": [3, 1], "Options": [{"Name": "Paper", "Value": "Gloss"}]})
        self.assertEqual(first["Notes"], "Shop 1")
        self.assertEqual(client.cart_items[1]["Notes"], "")

    def test_zero_quantity_lines_skipped(self):
        client = FakePressero()
        out = self._add(client, [{"addressId": "a1", "qty": 0}, {"addressId": "a2", "qty": None}, {"addressId": "a3", "qty": 1}])
        self.assertEqual(out["added"], 1)
        self.assertEqual([r["addressId"] for r in out["results"]], ["a3"])

    def test_price_warning_counts_as_added(self):
        client = FakePressero()
        client.cart_failures["a1"] = (400, WARNING)
        out = self._add(client, [{"addressId": "a1", "qty": 1}])
        self.assertTrue(out["ok"])
        self.assertEqual(out["added"], 1)
        self.assertEqual(out["warnings"], 1)
        self.assertEqual(out["results"][0]["warning"], WARNING)

    def test_failed_line_recorded_and_rest_continue(self):
        client = FakePressero()
        client.cart_failures["a1"] = (400, "Quantity below minimum")
        out = self._add(client, [{"addressId": "a1", "qty": 1}, {"addressId": "a2", "qty": 1}])
        self.assertFalse(out["ok"])
        self.assertEqual(out["added"], 1)
        self.assertEqual(out["failed"], 1)
        self.assertEqual(out["results"][0], {"addressId": "a1", "qty": 1, "status": 400, "ok": False, "error": "Quantity below minimum"})
        self.assertEqual(client.cart_items[0]["ShipTo"], "a2")

    def test_line_without_address_id_never_posted(self):
        client = FakePressero()
        out = self._add(client, [{"addressId": None, "qty": 2}, {"addressId": "  ", "qty": 1}, {"addressId": "a2", "qty": 1}])
        self.assertFalse(out["ok"])
        self.assertEqual(out["failed"], 2)
        self.assertEqual(out["added"], 1)
        self.assertEqual([item["ShipTo"] for item in client.cart_items], ["a2"])
        self.assertEqual(out["results"][0]["error"], "addressId is required")

    def test_warning_text_on_other_status_is_a_failure(self):
        client = FakePressero()
        client.cart_failures["a1"] = (500, WARNING)
        out = self._add(client, [{"addressId": "a1", "qty": 1}])
        self.assertFalse(out["ok"])
        self.assertEqual(out["failed"], 1)


if __name__ == "__main__":
    unittest.main()
