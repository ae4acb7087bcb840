import json

import pytest

from parcel_graph.relationships import RelationshipEdgeWriter, RelationshipRegistry
from parcel_graph.use_codes import UseCodeClassifier, load_default_taxonomy


@pytest.fixture
def taxonomy():
    return load_default_taxonomy()


@pytest.fixture
def classifier(taxonomy):
    return UseCodeClassifier(taxonomy)


@pytest.fixture
def edge_writer():
    return RelationshipEdgeWriter(RelationshipRegistry())


@pytest.fixture
def jane_doe():
    return {"type": "person", "first_name": "Jane", "last_name": "Doe"}


@pytest.fixture
def sample_record():
    """A scraped single-family record with two sales, one tax year, structure and utility"""
    return {
        "parcel_id": "12345",
        "property_use": "Single Family (0100)",
        "legal_description": "LOT 1 BLK 2 SUNNY ACRES",
        "total_area": "2,100",
        "livable_area": "1,850 SF",
        "year_built": "1987",
        "address": {
            "street_number": "101",
            "street_name": "Main",
            "street_suffix_type": "St",
            "city_name": "Deland",
            "state_code": "FL",
            "postal_code": "32114-1234",
        },
        "sales": [
            {
                "date": "01/05/2020",
                "price": "$250,000",
                "deed_type": "WARRANTY DEED",
                "instrument_url": "https://records.example.gov/view?doc=a=2020012345",
            },
            {
                "date": "06/15/2010",
                "price": "$100,000",
                "deed_type": "QUIT CLAIM DEED",
            },
        ],
        "taxes": [
            {"year": "2023", "assessed": "$200,000", "market": "$260,000", "taxable": "$175,000.50",
             "building": "$150,000", "land": "$110,000"},
        ],
        "structure": {"roof_covering_material": "Shingle", "number_of_stories": 2},
        "utility": {"cooling_system_type": "CentralAir"},
    }


@pytest.fixture
def sample_owners_entry(jane_doe):
    return {"owners_by_date": {"2020-01-05": [jane_doe], "current": [jane_doe]}}


@pytest.fixture
def sample_layout_entry():
    return {
        "layouts": [
            {"space_type": "Bedroom", "floor_level": "1st Floor"},
            {"space_type": "Full Bathroom", "floor_level": "2nd Floor"},
        ]
    }


def read_json(path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)
