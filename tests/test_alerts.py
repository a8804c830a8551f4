import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from checklist_tracking.domain.models import AlertCondition, KpiField
from checklist_tracking.services import alerts

SCHEMA = [
    KpiField(id="temp", name="Temperature", type="number"),
    KpiField(id="note", name="Note", type="text"),
    KpiField(id="ok", name="Guard closed", type="boolean"),
    KpiField(id="color", name="Color", type="select", options=("red", "green", "blue")),
]


def _value(**fields):
    return [{"id": key, "name": key, "value": value} for key, value in fields.items()]


class ExtractFieldValueTests(unittest.TestCase):
    def test_list_lookup_by_id(self) -> None:
        self.assertEqual(alerts.extract_field_value(_value(temp=5, note="x"), "note"), "x")

    def test_list_lookup_by_trailing_name(self) -> None:
        recorded = [{"name": "pressure", "value": 3}]
        self.assertEqual(alerts.extract_field_value(recorded, "kpi-1-pressure"), 3)

    def test_mapping_and_primitive(self) -> None:
        self.assertEqual(alerts.extract_field_value({"id": "temp", "value": 7}, "temp"), 7)
        self.assertEqual(alerts.extract_field_value({"value": 9}, "temp"), 9)
        self.assertEqual(alerts.extract_field_value(12, "temp"), 12)
        self.assertIsNone(alerts.extract_field_value(None, "temp"))
        self.assertIsNone(alerts.extract_field_value(_value(note="x"), "temp"))

    def test_mapping_without_requested_field(self) -> None:
        self.assertEqual(alerts.extract_field_value({"temp": 4}, "temp"), 4)
        self.assertIsNone(alerts.extract_field_value({"note": "oil leak"}, "temp"))


class EvaluateNumericTests(unittest.TestCase):
    def test_inside_range_does_not_trigger(self) -> None:
        condition = AlertCondition(field_id="temp", type="numeric", min=0, max=10)
        self.assertEqual(alerts.evaluate(_value(temp=5), SCHEMA, [condition]), [])

    def test_above_max_triggers(self) -> None:
        condition = AlertCondition(field_id="temp", type="numeric", min=0, max=10)
        triggered = alerts.evaluate(_value(temp=15), SCHEMA, [condition])
        self.assertEqual(len(triggered), 1)
        self.assertEqual(triggered[0].field_value, 15.0)
        self.assertEqual(triggered[0].field_name, "Temperature")

    def test_below_min_only_triggers(self) -> None:
        condition = AlertCondition(field_id="temp", type="numeric", min=10)
        self.assertEqual(len(alerts.evaluate(_value(temp=5), SCHEMA, [condition])), 1)

    def test_decimal_comma_and_non_numeric(self) -> None:
        condition = AlertCondition(field_id="temp", type="numeric", max=10)
        self.assertEqual(len(alerts.evaluate(_value(temp="10,5"), SCHEMA, [condition])), 1)
        self.assertEqual(alerts.evaluate(_value(temp="n/a"), SCHEMA, [condition]), [])

    def test_missing_value_never_triggers(self) -> None:
        condition = AlertCondition(field_id="temp", type="numeric", max=10)
        self.assertEqual(alerts.evaluate(_value(temp=None), SCHEMA, [condition]), [])
        self.assertEqual(alerts.evaluate(None, SCHEMA, [condition]), [])


class EvaluateOtherTypesTests(unittest.TestCase):
    def test_text_contains(self) -> None:
        condition = AlertCondition(field_id="note", type="text", match_text="leak")
        self.assertEqual(len(alerts.evaluate(_value(note="oil leak found"), SCHEMA, [condition])), 1)
        self.assertEqual(alerts.evaluate(_value(note="all fine"), SCHEMA, [condition]), [])

    def test_text_ignores_other_fields_in_mapping(self) -> None:
        condition = AlertCondition(field_id="note", type="text", match_text="leak")
        self.assertEqual(alerts.evaluate({"color": "leak red"}, SCHEMA, [condition]), [])
        self.assertEqual(len(alerts.evaluate({"note": "oil leak"}, SCHEMA, [condition])), 1)

    def test_boolean_mismatch(self) -> None:
        condition = AlertCondition(field_id="ok", type="boolean", expected=True)
        triggered = alerts.evaluate(_value(ok=False), SCHEMA, [condition])
        self.assertEqual(len(triggered), 1)
        self.assertFalse(triggered[0].field_value)
        self.assertTrue(triggered[0].expected)
        self.assertEqual(alerts.evaluate(_value(ok="yes"), SCHEMA, [condition]), [])

    def test_select_membership(self) -> None:
        condition = AlertCondition(field_id="color", type="select", match_values=("red", "blue"))
        self.assertEqual(len(alerts.evaluate(_value(color="red"), SCHEMA, [condition])), 1)
        self.assertEqual(alerts.evaluate(_value(color="green"), SCHEMA, [condition]), [])
        self.assertEqual(len(alerts.evaluate(_value(color=["green", "blue"]), SCHEMA, [condition])), 1)

    def test_multiple_conditions(self) -> None:
        conditions = [
            AlertCondition(field_id="temp", type="numeric", max=10),
            AlertCondition(field_id="note", type="text", match_text="leak"),
            AlertCondition(field_id="ok", type="boolean", expected=True),
        ]
        triggered = alerts.evaluate(_value(temp=20, note="ok", ok=False), SCHEMA, conditions)
        self.assertEqual([item.condition.field_id for item in triggered], ["temp", "ok"])

    def test_from_dict_persisted_shape(self) -> None:
        condition = AlertCondition.from_dict({"field_id": "ok", "type": "boolean", "boolean_value": False})
        self.assertFalse(condition.expected)
        self.assertEqual(AlertCondition.from_dict(condition.to_dict()), condition)
        with self.assertRaises(ValueError):
            AlertCondition.from_dict({"field_id": "ok", "type": "regex"})

    def test_describe_trigger(self) -> None:
        condition = AlertCondition(field_id="ok", type="boolean", expected=True)
        triggered = alerts.evaluate(_value(ok=False), SCHEMA, [condition])
        self.assertEqual(alerts.describe_trigger(triggered[0]), "Guard closed: No (expected Yes)")


if __name__ == "__main__":
    unittest.main()
