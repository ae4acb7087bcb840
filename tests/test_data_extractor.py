import os

import pytest

from parcel_graph.data_extractor import (
    extract_property_data,
    instrument_name,
    map_deed_type,
    plan_property,
    source_info,
    write_property_plan,
)
from parcel_graph.relationships import RelationshipEdgeWriter, RelationshipRegistry
from parcel_graph.use_codes import ClassificationError
from parcel_graph.validation import RecordValidationError, validate_record

from conftest import read_json


def snapshot(directory):
    return {name: read_json(os.path.join(directory, name)) for name in sorted(os.listdir(directory))}


def edge(directory, name):
    body = read_json(os.path.join(directory, name))
    return body["from"]["/"], body["to"]["/"]


@pytest.fixture
def out_dir(tmp_path):
    return str(tmp_path / "12345")


@pytest.fixture
def written(out_dir, sample_record, sample_owners_entry, sample_layout_entry):
    extract_property_data("12345", sample_record, out_dir, sample_owners_entry, sample_layout_entry)
    return out_dir


class TestHelpers:

    @pytest.mark.parametrize("raw,expected", [
        ("WARRANTY DEED", "Warranty Deed"),
        ("SPECIAL WARRANTY DEED", "Special Warranty Deed"),
        ("Quit Claim Deed", "Quitclaim Deed"),
        ("TAX DEED", "Tax Deed"),
        ("AGREEMENT", None),
        (None, None),
    ])
    def test_map_deed_type(self, raw, expected):
        assert map_deed_type(raw) == expected

    def test_instrument_name(self):
        assert instrument_name("https://x.gov/doc?id=a=2020012345", 1) == "Instrument 2020012345"
        assert instrument_name(None, 3) == "Instrument 3"

    def test_source_info_prefers_seed_row(self):
        info = source_info("12345", {"parcel_id": "0012345", "url": "https://county.gov/p/12345", "method": "GET"})
        assert info == {
            "source_http_request": {"method": "GET", "url": "https://county.gov/p/12345"},
            "request_identifier": "0012345",
        }

    def test_source_info_fallback(self):
        info = source_info("12345", None, {"source_url": "https://county.gov/p"})
        assert info["source_http_request"]["url"] == "https://county.gov/p"
        assert info["request_identifier"] == "12345"


class TestEntityFiles:

    def test_property_record(self, written):
        prop = read_json(os.path.join(written, "property.json"))
        assert prop["parcel_identifier"] == "12345"
        assert prop["property_type"] == "Building"
        assert prop["structure_form"] == "SingleFamilyDetached"
        assert prop["number_of_units_type"] == "One"
        assert prop["total_area"] == "2100"
        assert prop["livable_floor_area"] == "1850"
        assert prop["property_structure_built_year"] == 1987
        assert prop["request_identifier"] == "12345"

    def test_address_splits_zip_plus_four(self, written):
        address = read_json(os.path.join(written, "address.json"))
        assert address["postal_code"] == "32114"
        assert address["plus_four_postal_code"] == "1234"
        assert address["city_name"] == "DELAND"
        assert address["country_code"] == "US"

    def test_sales_deeds_files(self, written):
        sale = read_json(os.path.join(written, "sales_1.json"))
        assert sale["ownership_transfer_date"] == "2020-01-05"
        assert sale["purchase_price_amount"] == 250000.0
        assert read_json(os.path.join(written, "deed_1.json"))["deed_type"] == "Warranty Deed"
        assert read_json(os.path.join(written, "deed_2.json"))["deed_type"] == "Quitclaim Deed"
        file_1 = read_json(os.path.join(written, "file_1.json"))
        assert file_1["document_type"] == "ConveyanceDeedWarrantyDeed"
        assert file_1["name"] == "Instrument 2020012345"
        assert file_1["original_url"].startswith("https://")
        file_2 = read_json(os.path.join(written, "file_2.json"))
        assert file_2["document_type"] == "ConveyanceDeedQuitClaimDeed"
        assert file_2["original_url"] is None

    def test_tax(self, written):
        tax = read_json(os.path.join(written, "tax_1.json"))
        assert tax["tax_year"] == 2023
        assert tax["property_taxable_value_amount"] == 175000.5

    def test_single_owner_entity(self, written):
        assert not os.path.exists(os.path.join(written, "person_2.json"))
        person = read_json(os.path.join(written, "person_1.json"))
        assert (person["first_name"], person["last_name"]) == ("Jane", "Doe")

    def test_layouts(self, written):
        layouts = [read_json(os.path.join(written, f"layout_{n}.json")) for n in range(1, 6)]
        assert [layout["space_type"] for layout in layouts] == ["Building", "Floor", "Floor", "Bedroom", "Full Bathroom"]
        assert [layout["space_index"] for layout in layouts] == [1, 2, 3, 4, 5]
        assert layouts[0]["total_area_sq_ft"] == 2100
        assert layouts[3]["layout_role"] == "Room"
        assert not os.path.exists(os.path.join(written, "layout_6.json"))


class TestRelationshipFiles:

    def test_edges(self, written):
        assert edge(written, "relationship_property_address.json") == ("./property.json", "./address.json")
        assert edge(written, "relationship_property_tax_1.json") == ("./property.json", "./tax_1.json")
        assert edge(written, "relationship_sales_deed_2.json") == ("./sales_2.json", "./deed_2.json")
        assert edge(written, "relationship_deed_file_1.json") == ("./deed_1.json", "./file_1.json")
        assert edge(written, "relationship_sales_history_person_1.json") == ("./sales_1.json", "./person_1.json")
        assert edge(written, "relationship_property_layout_1.json") == ("./property.json", "./layout_1.json")
        assert edge(written, "relationship_layout_structure_1.json") == ("./layout_1.json", "./structure.json")
        assert edge(written, "relationship_layout_utility_1.json") == ("./layout_1.json", "./utility.json")
        assert edge(written, "relationship_layout_layout_4.json") == ("./layout_3.json", "./layout_5.json")

    def test_no_duplicate_or_extra_edges(self, written):
        names = sorted(name for name in os.listdir(written) if name.startswith("relationship_"))
        assert names == sorted([
            "relationship_property_address.json",
            "relationship_property_tax_1.json",
            "relationship_sales_deed_1.json",
            "relationship_sales_deed_2.json",
            "relationship_deed_file_1.json",
            "relationship_deed_file_2.json",
            "relationship_sales_history_person_1.json",
            "relationship_property_layout_1.json",
            "relationship_layout_structure_1.json",
            "relationship_layout_utility_1.json",
            "relationship_layout_layout_1.json",
            "relationship_layout_layout_2.json",
            "relationship_layout_layout_3.json",
            "relationship_layout_layout_4.json",
        ])

    def test_every_relationship_is_valid_and_resolves(self, written):
        for name in os.listdir(written):
            if not name.startswith("relationship_"):
                continue
            body = read_json(os.path.join(written, name))
            validate_record("relationship", body)
            for end in ("from", "to"):
                assert os.path.exists(os.path.join(written, body[end]["/"]))

    def test_land_parcel_links_structure_to_property(self, out_dir, sample_record):
        record = dict(sample_record, property_use="0000 Vacant Residential")
        extract_property_data("12345", record, out_dir)
        names = os.listdir(out_dir)
        assert "relationship_property_structure.json" in names
        assert "relationship_property_utility.json" in names
        assert not any(name.startswith("layout_") for name in names)


class TestRegeneration:

    def test_rerun_is_idempotent(self, written, sample_record, sample_owners_entry, sample_layout_entry):
        before = snapshot(written)
        extract_property_data("12345", sample_record, written, sample_owners_entry, sample_layout_entry)
        assert snapshot(written) == before

    def test_rerun_with_shared_writer(self, out_dir, sample_record, sample_owners_entry, sample_layout_entry):
        writer = RelationshipEdgeWriter(RelationshipRegistry(), validator=validate_record)
        extract_property_data("12345", sample_record, out_dir, sample_owners_entry, sample_layout_entry, edge_writer=writer)
        before = snapshot(out_dir)
        extract_property_data("12345", sample_record, out_dir, sample_owners_entry, sample_layout_entry, edge_writer=writer)
        assert snapshot(out_dir) == before

    def test_stale_outputs_are_removed(self, written, sample_record, sample_owners_entry):
        extract_property_data("12345", dict(sample_record, sales=[]), written, sample_owners_entry, None)
        names = set(os.listdir(written))
        assert "sales_1.json" not in names
        assert "relationship_layout_layout_1.json" not in names
        assert "layout_2.json" not in names
        assert "layout_1.json" in names
        assert "person_1.json" in names

    def test_dropped_single_entities_are_removed(self, written, sample_record):
        record = {key: value for key, value in sample_record.items() if key not in ("address", "structure", "utility")}
        extract_property_data("12345", record, written)
        names = set(os.listdir(written))
        assert not names & {"address.json", "structure.json", "utility.json"}
        assert not any(name.startswith(("relationship_property_address", "relationship_layout_structure"))
                       for name in names)

    def test_unrelated_files_survive(self, written, sample_record):
        with open(os.path.join(written, "notes.txt"), "w") as f:
            f.write("keep")
        extract_property_data("12345", sample_record, written)
        assert os.path.exists(os.path.join(written, "notes.txt"))


class TestFailures:

    def test_classification_failure_writes_nothing(self, tmp_path, sample_record):
        out_dir = tmp_path / "12345"
        out_dir.mkdir()
        (out_dir / "layout_1.json").write_text("{}")
        with pytest.raises(ClassificationError) as exc_info:
            extract_property_data("12345", dict(sample_record, property_use="Spaceport"), str(out_dir))
        assert exc_info.value.path == "property.property_type"
        assert sorted(os.listdir(out_dir)) == ["layout_1.json"]

    def test_missing_use_code_is_a_failure(self, tmp_path, sample_record):
        record = dict(sample_record)
        del record["property_use"]
        with pytest.raises(ClassificationError):
            plan_property("12345", record, str(tmp_path / "out"))
        assert not (tmp_path / "out").exists()

    def test_invalid_record_writes_nothing(self, tmp_path, sample_record):
        with pytest.raises(RecordValidationError) as exc_info:
            plan_property("", sample_record, str(tmp_path / "out"))
        assert exc_info.value.path == "property.parcel_identifier"
        assert not (tmp_path / "out").exists()

    def test_scraped_layout_text_is_coerced(self, out_dir, sample_record):
        layout_entry = {"layouts": [
            {"space_type": "Bedroom", "size_square_feet": "120 SF", "floor_level": 1, "is_finished": "yes"},
            {"space_type": "Den", "size_square_feet": "n/a", "floor_level": 2, "is_exterior": "maybe"},
        ]}
        extract_property_data("12345", sample_record, out_dir, layout_entry=layout_entry)
        layouts = [read_json(os.path.join(out_dir, f"layout_{n}.json")) for n in range(1, 6)]
        assert [layout["space_index"] for layout in layouts] == [1, 2, 3, 4, 5]
        assert [layout["floor_level"] for layout in layouts[1:3]] == ["1", "2"]
        bedroom, den = layouts[3], layouts[4]
        assert (bedroom["size_square_feet"], bedroom["floor_level"], bedroom["is_finished"]) == (120, "1", True)
        assert (den["size_square_feet"], den["is_exterior"]) == (None, None)


class TestOwnerSources:

    def test_raw_owner_strings(self, out_dir, sample_record):
        record = dict(sample_record, owners=["DOE JANE & JOHN"])
        record["sales"] = [dict(sample_record["sales"][0], grantee="ACME HOLDINGS LLC"), sample_record["sales"][1]]
        extract_property_data("12345", record, out_dir)
        people = [read_json(os.path.join(out_dir, f"person_{n}.json")) for n in (1, 2)]
        assert [(p["first_name"], p["last_name"]) for p in people] == [("Jane", "Doe"), ("John", "Doe")]
        assert read_json(os.path.join(out_dir, "company_1.json"))["name"] == "ACME HOLDINGS LLC"
        assert edge(out_dir, "relationship_sales_history_company_1.json") == ("./sales_1.json", "./company_1.json")
        assert edge(out_dir, "relationship_sales_history_person_2.json") == ("./sales_1.json", "./person_2.json")

    def test_plan_then_write(self, out_dir, sample_record, sample_owners_entry, edge_writer):
        plan = plan_property("12345", sample_record, out_dir, sample_owners_entry)
        summary = write_property_plan(plan, edge_writer)
        assert summary["parcel_id"] == "12345"
        assert summary["entities"] == len(plan.entity_files())
        assert os.path.exists(os.path.join(out_dir, "person_1.json"))
