import pytest

from parcel_graph.owner_processor import (
    CompanyOwner,
    OwnerTransactionLinker,
    PersonOwner,
    SaleEvent,
    is_company_name,
    link_owners_by_date,
    most_recent_sale,
    owner_from_mention,
    parse_owner_name,
    parse_owner_string,
)


@pytest.fixture
def acme():
    return {"type": "company", "name": "ACME HOLDINGS, LLC"}


class TestOwnerParsing:

    def test_person_last_first_middle(self):
        assert parse_owner_name("DOE JANE A") == {
            "type": "person", "first_name": "JANE", "middle_name": "A", "last_name": "DOE",
        }

    def test_person_two_parts(self):
        parsed = parse_owner_name("DOE JANE")
        assert (parsed["first_name"], parsed["last_name"]) == ("JANE", "DOE")

    def test_company(self):
        assert parse_owner_name("Acme Holdings LLC") == {"type": "company", "name": "Acme Holdings LLC"}

    @pytest.mark.parametrize("name,expected", [
        ("SUNSHINE PROPERTIES INC", True),
        ("SMITH FAMILY TRUST", True),
        ("JONES P.A.", True),
        ("CORTEZ MARIA", False),
        ("TRUSTY JOHN", False),
    ])
    def test_company_keywords_are_whole_words(self, name, expected):
        assert is_company_name(name) is expected

    def test_joint_name_parses_first_owner_only(self):
        assert parse_owner_name("DOE JOHN & JANE") == {
            "type": "person", "first_name": "JOHN", "middle_name": None, "last_name": "DOE",
        }
        assert parse_owner_name("& JANE") is None

    def test_joint_owners_share_surname(self):
        mentions = parse_owner_string("DOE JOHN & JANE")
        assert [(m["first_name"], m["last_name"]) for m in mentions] == [("JOHN", "DOE"), ("JANE", "DOE")]

    def test_joint_owners_with_full_names(self):
        mentions = parse_owner_string("DOE JOHN & SMITH MARY K")
        assert [m["last_name"] for m in mentions] == ["DOE", "SMITH"]
        assert mentions[1]["middle_name"] == "K"

    def test_blank(self):
        assert parse_owner_string("   ") == []
        assert parse_owner_name(None) is None


class TestMentions:

    def test_person_mention(self, jane_doe):
        assert owner_from_mention(jane_doe) == PersonOwner(first_name="Jane", last_name="Doe")

    @pytest.mark.parametrize("mention", [
        "Jane Doe",
        {"type": "person"},
        {"type": "company", "name": "  "},
        {"type": "trust", "name": "X"},
    ])
    def test_malformed_mentions_are_skipped(self, mention):
        assert owner_from_mention(mention) is None

    def test_person_dedup_key_ignores_case_and_spacing(self):
        a = PersonOwner(first_name="Jane", last_name="Doe")
        b = owner_from_mention({"type": "person", "first_name": " JANE ", "last_name": "doe"})
        assert a.dedup_key == b.dedup_key

    def test_company_dedup_key_ignores_punctuation(self):
        assert CompanyOwner("ACME, INC.").dedup_key == CompanyOwner("Acme Inc").dedup_key


class TestMostRecentSale:

    def test_latest_date(self):
        sales = [SaleEvent(1, "2010-06-15"), SaleEvent(2, "2020-01-05"), SaleEvent(3, None)]
        assert most_recent_sale(sales).ordinal == 2

    def test_tie_takes_earliest_in_file_order(self):
        sales = [SaleEvent(1, "2020-01-05"), SaleEvent(2, "2020-01-05")]
        assert most_recent_sale(sales).ordinal == 1

    def test_all_dates_null_takes_first(self):
        assert most_recent_sale([SaleEvent(1), SaleEvent(2)]).ordinal == 1

    def test_no_sales(self):
        assert most_recent_sale([]) is None


class TestLinker:

    def test_date_owner_and_current_owner_merge(self, jane_doe):
        result = link_owners_by_date(
            {"2020-01-05": [jane_doe], "current": [dict(jane_doe)]},
            [SaleEvent(1, "2020-01-05")],
        )
        assert len(result.persons) == 1
        assert len(result.edges) == 1
        assert result.edges[0].sale.ordinal == 1
        assert result.edges[0].rule == "date"

    def test_same_owner_on_two_dates(self, jane_doe):
        result = link_owners_by_date(
            {"2010-06-15": [jane_doe], "2020-01-05": [jane_doe]},
            [SaleEvent(1, "2020-01-05"), SaleEvent(2, "2010-06-15")],
        )
        assert len(result.persons) == 1
        assert sorted(edge.sale.ordinal for edge in result.edges) == [1, 2]

    def test_current_owners_link_to_latest_sale(self, jane_doe, acme):
        result = link_owners_by_date(
            {"current": [jane_doe, acme]},
            [SaleEvent(1, "2010-06-15"), SaleEvent(2, "2020-01-05")],
        )
        assert [(edge.sale.ordinal, edge.owner.type, edge.rule) for edge in result.edges] == [
            (2, "person", "current"), (2, "company", "current"),
        ]

    def test_current_owners_without_dates_link_to_first_sale(self, jane_doe):
        result = link_owners_by_date({"current": [jane_doe]}, [SaleEvent(1), SaleEvent(2)])
        assert [edge.sale.ordinal for edge in result.edges] == [1]

    def test_current_owners_without_sales_are_still_entities(self, jane_doe):
        result = link_owners_by_date({"current": [jane_doe]}, [])
        assert len(result.persons) == 1
        assert result.edges == []

    def test_unmatched_date_creates_nothing(self, jane_doe):
        result = link_owners_by_date({"1999-01-01": [jane_doe]}, [SaleEvent(1, "2020-01-05")])
        assert result.entities == []
        assert result.edges == []

    def test_malformed_input_is_tolerated(self, jane_doe):
        result = link_owners_by_date(
            {"2020-01-05": "not a list", "current": [None, {"type": "person"}, jane_doe]},
            [SaleEvent(1, "2020-01-05")],
        )
        assert len(result.persons) == 1
        assert len(result.edges) == 1

    def test_owner_files_and_edge_names(self, jane_doe, acme):
        result = link_owners_by_date(
            {"2020-01-05": [jane_doe, acme], "2010-06-15": [{"type": "person", "first_name": "John", "last_name": "Roe"}]},
            [SaleEvent(1, "2020-01-05"), SaleEvent(2, "2010-06-15")],
        )
        assert [entity.file_name for entity in result.entities] == ["person_1.json", "person_2.json", "company_1.json"]
        names = [(name, edge.sale.ref, edge.owner.ref) for name, edge in result.edge_files()]
        assert names == [
            ("relationship_sales_history_person_1.json", "./sales_1.json", "./person_1.json"),
            ("relationship_sales_history_company_1.json", "./sales_1.json", "./company_1.json"),
            ("relationship_sales_history_person_2.json", "./sales_2.json", "./person_2.json"),
        ]

    def test_reused_linker_starts_fresh(self, jane_doe, acme):
        linker = OwnerTransactionLinker()
        first = linker.link({"2020-01-05": [jane_doe]}, [SaleEvent(1, "2020-01-05")], [])
        second = linker.link({"2010-06-15": [acme]}, [SaleEvent(1, "2010-06-15")], [])
        assert [entity.file_name for entity in first.entities] == ["person_1.json"]
        assert [entity.file_name for entity in second.entities] == ["company_1.json"]
        assert len(second.edges) == 1

    def test_linker_accepts_typed_owners(self):
        result = OwnerTransactionLinker().link(
            {"2020-01-05": [CompanyOwner("Acme Inc")]},
            [SaleEvent(1, "2020-01-05")],
            [CompanyOwner("ACME, INC.")],
        )
        assert len(result.companies) == 1
        assert len(result.edges) == 1
