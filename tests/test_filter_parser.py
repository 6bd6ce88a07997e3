import os
import unittest
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, Numeric, String, Uuid, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from patch_api.core.errors import (
    FieldNotFilterable,
    InvalidFilterValue,
    InvalidOperator,
    ListingError,
    UnknownFilterField,
)
from patch_api.schemas.listing import FilterOperator, FilterSpec
from patch_api.services.field_registry import array_filter, build_registry, field, presence_filter, tag_field
from patch_api.services.filter_parser import (
    apply_filters,
    coerce_filter_value,
    escape_like,
    parse_filters,
    remove_invalid_chars,
)


class _Base(DeclarativeBase):
    pass


class _FilterTestModel(_Base):
    __tablename__ = "_filter_test_model"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(50))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    score: Mapped[int] = mapped_column(Integer, default=0)
    ratio: Mapped[float] = mapped_column(Float, default=0.0)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    due: Mapped[date] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=True)
    ref: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=True)


FIELDS = build_registry(
    "filter-test",
    [
        field("id", _FilterTestModel.id),
        field("title", _FilterTestModel.title),
        field("active", _FilterTestModel.active),
        field("score", _FilterTestModel.score),
        field("ratio", _FilterTestModel.ratio),
        field("amount", _FilterTestModel.amount),
        field("due", _FilterTestModel.due),
        field("created_at", _FilterTestModel.created_at),
        field("ref", _FilterTestModel.ref),
        field("note", _FilterTestModel.title, filterable=False),
        presence_filter("due_set", _FilterTestModel.due),
        array_filter("labels", _FilterTestModel.title),
        tag_field("tags"),
    ],
)


class FilterCoercionTests(unittest.TestCase):
    def test_boolean_accepts_string_values(self):
        self.assertTrue(coerce_filter_value(FIELDS["active"], "true"))
        self.assertTrue(coerce_filter_value(FIELDS["active"], "Yes"))
        self.assertFalse(coerce_filter_value(FIELDS["active"], "0"))
        self.assertFalse(coerce_filter_value(FIELDS["active"], "n"))

    def test_boolean_invalid_value_raises_400(self):
        with self.assertRaises(InvalidFilterValue) as ctx:
            coerce_filter_value(FIELDS["active"], "maybe")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_numbers_accept_string_values(self):
        self.assertEqual(coerce_filter_value(FIELDS["score"], "42"), 42)
        self.assertAlmostEqual(coerce_filter_value(FIELDS["ratio"], "3.14"), 3.14)
        self.assertAlmostEqual(coerce_filter_value(FIELDS["ratio"], "3,14"), 3.14)
        self.assertEqual(coerce_filter_value(FIELDS["amount"], "99.50"), Decimal("99.50"))

    def test_number_invalid_value(self):
        with self.assertRaises(InvalidFilterValue):
            coerce_filter_value(FIELDS["score"], "4.5.6")

    def test_dates_accept_iso_date_and_datetime(self):
        self.assertEqual(coerce_filter_value(FIELDS["due"], "2026-02-26"), date(2026, 2, 26))
        self.assertEqual(coerce_filter_value(FIELDS["due"], "2026-02-26T13:45:00+03:00"), date(2026, 2, 26))

    def test_datetime_date_only_is_timezone_aware_start_of_day(self):
        value = coerce_filter_value(FIELDS["created_at"], "2026-02-26")
        self.assertEqual(value, datetime(2026, 2, 26, tzinfo=timezone.utc))

    def test_datetime_naive_is_treated_as_utc(self):
        value = coerce_filter_value(FIELDS["created_at"], "2026-02-26T10:15:00")
        self.assertEqual(value.tzinfo, timezone.utc)
        value = coerce_filter_value(FIELDS["created_at"], "2026-02-26T10:15:00Z")
        self.assertEqual(value, datetime(2026, 2, 26, 10, 15, tzinfo=timezone.utc))

    def test_uuid(self):
        uid = uuid.uuid4()
        self.assertEqual(coerce_filter_value(FIELDS["ref"], str(uid)), uid)
        with self.assertRaises(InvalidFilterValue):
            coerce_filter_value(FIELDS["ref"], "not-a-uuid")

    def test_text_is_left_as_is(self):
        self.assertEqual(coerce_filter_value(FIELDS["title"], " abc "), " abc ")

    def test_presence_values(self):
        self.assertTrue(coerce_filter_value(FIELDS["due_set"], "not_nil"))
        self.assertFalse(coerce_filter_value(FIELDS["due_set"], " NIL "))
        with self.assertRaises(InvalidFilterValue):
            coerce_filter_value(FIELDS["due_set"], "true")

    def test_invalid_chars_and_like_escaping(self):
        self.assertEqual(remove_invalid_chars("ab\x00c"), "abc")
        self.assertEqual(escape_like("50%_a\\b"), "50\\%\\_a\\\\b")


class ParseFiltersTests(unittest.TestCase):
    def test_plain_value_is_equality(self):
        specs = parse_filters([("filter[title]", "x")], FIELDS)
        self.assertEqual(specs, [FilterSpec(field="title", op=FilterOperator.EQ, values=("x",))])

    def test_non_filter_params_are_ignored(self):
        self.assertEqual(parse_filters([("sort", "title"), ("limit", "5"), ("filters", "x")], FIELDS), [])

    def test_repeated_values_become_in(self):
        specs = parse_filters([("filter[title]", "a"), ("filter[title][eq]", "b"), ("filter[title]", "a")], FIELDS)
        self.assertEqual(specs, [FilterSpec(field="title", op=FilterOperator.IN, values=("a", "b"))])

    def test_explicit_in_splits_on_comma(self):
        specs = parse_filters([("filter[score][in]", "1, 2,3")], FIELDS)
        self.assertEqual(specs, [FilterSpec(field="score", op=FilterOperator.IN, values=("1", "2", "3"))])

        specs = parse_filters([("filter[score][in]", "7")], FIELDS)
        self.assertEqual(specs[0].op, FilterOperator.IN)

    def test_range_operators_stay_separate(self):
        specs = parse_filters([("filter[score][gt]", "1"), ("filter[score][lt]", "9"), ("filter[score][gt]", "3")], FIELDS)
        self.assertEqual(
            specs,
            [
                FilterSpec(field="score", op=FilterOperator.GT, values=("1",)),
                FilterSpec(field="score", op=FilterOperator.GT, values=("3",)),
                FilterSpec(field="score", op=FilterOperator.LT, values=("9",)),
            ],
        )

    def test_operator_is_case_insensitive(self):
        specs = parse_filters([("filter[title][LIKE]", "a")], FIELDS)
        self.assertEqual(specs[0].op, FilterOperator.LIKE)

    def test_defaults_apply_only_to_unfiltered_fields(self):
        defaults = {"active": FilterSpec(field="active", op=FilterOperator.EQ, values=("true",))}
        self.assertEqual(parse_filters([], FIELDS, defaults), [defaults["active"]])

        specs = parse_filters([("filter[active][ne]", "true")], FIELDS, defaults)
        self.assertEqual(specs, [FilterSpec(field="active", op=FilterOperator.NE, values=("true",))])

    def test_unknown_field(self):
        for key in ("filter[missing]", "filter[]", "filter[title][like][x]"):
            with self.subTest(key=key):
                with self.assertRaises(UnknownFilterField):
                    parse_filters([(key, "1")], FIELDS)

    def test_unknown_operator_on_known_field(self):
        with self.assertRaises(InvalidOperator) as ctx:
            parse_filters([("filter[title][between]", "a")], FIELDS)
        self.assertEqual(ctx.exception.kind.value, "InvalidOperator")

    def test_operator_not_allowed_for_kind(self):
        cases = [
            ("filter[active][gt]", "true"),
            ("filter[title][lt]", "m"),
            ("filter[score][like]", "4"),
            ("filter[ref][ge]", str(uuid.uuid4())),
            ("filter[due_set][like]", "nil"),
            ("filter[labels][gt]", "a"),
            ("filter[labels][like]", "a"),
        ]
        for key, value in cases:
            with self.subTest(key=key):
                with self.assertRaises(InvalidOperator):
                    parse_filters([(key, value)], FIELDS)

    def test_not_filterable_fields(self):
        for key in ("filter[note]", "filter[tags]"):
            with self.subTest(key=key):
                with self.assertRaises(FieldNotFilterable):
                    parse_filters([(key, "x")], FIELDS)

    def test_empty_and_invalid_values(self):
        for key, value in (("filter[title]", " "), ("filter[score][in]", "1,,2"), ("filter[due]", "26.02.2026")):
            with self.subTest(key=key, value=value):
                with self.assertRaises(InvalidFilterValue):
                    parse_filters([(key, value)], FIELDS)

    def test_unknown_field_message_omits_operator(self):
        cases = [("filter[missing][in]", "missing"), ("filter[title][sub][eq]", "title.sub"), ("filter[a][b]", "a.b")]
        for key, name in cases:
            with self.subTest(key=key):
                with self.assertRaises(UnknownFilterField) as ctx:
                    parse_filters([(key, "1")], FIELDS)
                self.assertEqual(ctx.exception.message, f'Unknown filter field "{name}"')

    def test_errors_share_the_listing_error_base(self):
        with self.assertRaises(ListingError) as ctx:
            parse_filters([("filter[missing]", "1")], FIELDS)
        self.assertEqual(ctx.exception.payload(), {"detail": 'Unknown filter field "missing"', "kind": "UnknownFilterField"})


class ApplyFiltersTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.engine = create_engine("sqlite+pysqlite:///:memory:")
        _Base.metadata.create_all(cls.engine)
        with Session(cls.engine) as session:
            session.add_all(
                [
                    _FilterTestModel(id=1, title="prev-day", score=1, created_at=datetime(2026, 2, 25, 23, 59, 59)),
                    _FilterTestModel(id=2, title="same-day-morning", score=5, due=date(2026, 3, 1), created_at=datetime(2026, 2, 26, 9, 30)),
                    _FilterTestModel(id=3, title="same_day_evening", score=7, created_at=datetime(2026, 2, 26, 23, 59, 59)),
                    _FilterTestModel(id=4, title="next-day 100%", score=9, active=False, created_at=datetime(2026, 2, 27)),
                ]
            )
            session.commit()

    @classmethod
    def tearDownClass(cls):
        cls.engine.dispose()

    def _ids(self, params):
        with Session(self.engine) as session:
            query = session.query(_FilterTestModel.id).order_by(_FilterTestModel.id)
            query = apply_filters(query, FIELDS, parse_filters(params, FIELDS))
            return [row.id for row in query.all()]

    def test_datetime_equal_date_uses_day_range(self):
        self.assertEqual(self._ids([("filter[created_at]", "2026-02-26")]), [2, 3])

    def test_datetime_not_equal_date_excludes_day(self):
        self.assertEqual(self._ids([("filter[created_at][ne]", "2026-02-26")]), [1, 4])

    def test_datetime_in_dates_covers_each_day(self):
        self.assertEqual(self._ids([("filter[created_at][in]", "2026-02-25,2026-02-27")]), [1, 4])

    def test_range_filters_combine_with_and(self):
        self.assertEqual(self._ids([("filter[score][gt]", "1"), ("filter[score][le]", "7")]), [2, 3])

    def test_like_is_case_insensitive_and_literal(self):
        self.assertEqual(self._ids([("filter[title][like]", "SAME")]), [2, 3])
        self.assertEqual(self._ids([("filter[title][like]", "_day_")]), [3])
        self.assertEqual(self._ids([("filter[title][like]", "%")]), [4])

    def test_presence(self):
        self.assertEqual(self._ids([("filter[due_set]", "not_nil")]), [2])
        self.assertEqual(self._ids([("filter[due_set][ne]", "not_nil")]), [1, 3, 4])
        self.assertEqual(self._ids([("filter[due_set]", "nil")]), [1, 3, 4])

    def test_boolean_and_in(self):
        self.assertEqual(self._ids([("filter[active]", "false")]), [4])
        self.assertEqual(self._ids([("filter[score]", "1"), ("filter[score]", "9")]), [1, 4])


if __name__ == "__main__":
    unittest.main()
