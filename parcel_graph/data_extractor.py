"""
Builds the entity graph for one property: property, address, tax, sales,
deed, file, person, company, structure, utility and layout documents plus
the relationship documents connecting them.

Everything is assembled and validated in memory first (plan_property) so a
classification or schema failure leaves the output directory untouched;
write_property_plan then clears stale output and writes the new set.
"""
import os
import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .layout_builder import (
    FallbackAreas,
    LayoutHierarchyBuilder,
    LayoutNode,
    ROLE_BUILDING,
    ROLE_SITE_FEATURE,
    empty_layout_payload,
    layout_inputs_from_json,
    write_hierarchy_edges,
)
from .owner_processor import (
    CURRENT_KEY,
    LinkResult,
    SaleEvent,
    link_owners_by_date,
    parse_owner_string,
)
from .relationships import RelationshipEdgeWriter, file_ref
from .use_codes import UseCodeClassifier
from .utils import (
    cleanup_stale_outputs,
    ensure_directory,
    is_empty_value,
    parse_money,
    to_int_or_none,
    to_iso_date,
    write_json,
)
from .validation import validate_record

logger = logging.getLogger(__name__)

PROPERTY_FILE = "property.json"
ADDRESS_FILE = "address.json"
STRUCTURE_FILE = "structure.json"
UTILITY_FILE = "utility.json"

ADDRESS_FIELDS = [
    'street_number', 'street_name', 'street_pre_directional_text', 'street_post_directional_text',
    'street_suffix_type', 'unit_identifier', 'city_name', 'county_name', 'state_code',
    'postal_code', 'plus_four_postal_code', 'country_code',
]

DEED_TYPE_RULES = [
    (("SPECIAL", "WARRANTY"), "Special Warranty Deed"),
    (("WARRANTY",), "Warranty Deed"),
    (("QUIT",), "Quitclaim Deed"),
    (("GRANT DEED",), "Grant Deed"),
    (("BARGAIN", "SALE"), "Bargain and Sale Deed"),
    (("LADY BIRD",), "Lady Bird Deed"),
    (("TRANSFER ON DEATH",), "Transfer on Death Deed"),
    (("SHERIFF",), "Sheriff's Deed"),
    (("TAX DEED",), "Tax Deed"),
    (("TRUSTEE",), "Trustee's Deed"),
    (("PERSONAL REPRESENTATIVE",), "Personal Representative Deed"),
    (("CORRECTION",), "Correction Deed"),
    (("DEED IN LIEU",), "Deed in Lieu of Foreclosure"),
    (("LIFE ESTATE",), "Life Estate Deed"),
    (("GIFT DEED",), "Gift Deed"),
    (("COURT ORDER",), "Court Order Deed"),
    (("CONTRACT FOR DEED",), "Contract for Deed"),
    (("QUIET TITLE",), "Quiet Title Deed"),
]

DOCUMENT_TYPES = {
    "Warranty Deed": "ConveyanceDeedWarrantyDeed",
    "Quitclaim Deed": "ConveyanceDeedQuitClaimDeed",
}


def source_info(parcel_id, seed_row=None, record=None):
    """source_http_request / request_identifier shared by every emitted entity"""
    seed_row = seed_row or {}
    record = record or {}
    url = seed_row.get('url') or record.get('source_url') or f'https://property-data.local/property/{parcel_id}'
    method = seed_row.get('method') or 'GET'
    return {
        'source_http_request': {'method': method, 'url': url},
        'request_identifier': seed_row.get('parcel_id') or record.get('request_identifier') or parcel_id,
    }


def fix_name(val):
    if not val or not isinstance(val, str):
        return None
    val = val.strip()
    if not val:
        return None
    # Only first letter uppercase, rest lowercase
    return ' '.join(p.capitalize() for p in val.split())


def map_deed_type(raw):
    if not raw:
        return None
    upper_raw = str(raw).upper()
    for keywords, deed_type in DEED_TYPE_RULES:
        if all(kw in upper_raw for kw in keywords):
            return deed_type
    return None


def instrument_name(url, ordinal):
    """'Instrument <n>' using the trailing number of the instrument link when present"""
    if url:
        match = re.search(r'(\d+)\D*$', str(url))
        if match:
            return f'Instrument {match.group(1)}'
    return f'Instrument {ordinal}'


def sanitize_http_url(url):
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    return url if re.match(r'^https?://', url, re.IGNORECASE) else None


def extract_property(record, parcel_id, entry, info):
    total_area = to_int_or_none(record.get('total_area'))
    livable_area = to_int_or_none(record.get('livable_area'))
    year_built = to_int_or_none(record.get('year_built'))
    prop = dict(info)
    prop.update({
        'parcel_identifier': parcel_id,
        'livable_floor_area': str(livable_area) if livable_area else None,
        'total_area': str(total_area) if total_area else None,
        'property_structure_built_year': year_built,
        'property_legal_description_text': record.get('legal_description') or None,
        'number_of_units_type': entry.number_of_units_type,
    })
    prop.update(entry.to_property_attributes())
    return prop


def extract_address(record, info):
    raw_address = record.get('address')
    if isinstance(raw_address, str) and raw_address.strip():
        address = dict(info)
        address['unnormalized_address'] = raw_address.strip()
        return address
    if not isinstance(raw_address, dict):
        return None

    address = dict(info)
    for name in ADDRESS_FIELDS:
        value = raw_address.get(name)
        address[name] = None if is_empty_value(value) else str(value).strip()

    postal_code = address.get('postal_code')
    if postal_code and '-' in postal_code:
        base, plus4 = postal_code.split('-', 1)
        address['postal_code'] = base
        address['plus_four_postal_code'] = plus4 if len(plus4) == 4 and plus4.isdigit() else address.get('plus_four_postal_code')
    if address.get('city_name'):
        address['city_name'] = address['city_name'].upper()
    if not address.get('country_code'):
        address['country_code'] = 'US'
    return address


def extract_taxes(record, info):
    taxes = []
    for row in record.get('taxes') or []:
        if not isinstance(row, dict):
            logger.warning(f"Skipping tax row that is not an object: {row!r}")
            continue
        tax = dict(info)
        tax.update({
            'tax_year': to_int_or_none(row.get('year')),
            'property_assessed_value_amount': parse_money(row.get('assessed')),
            'property_market_value_amount': parse_money(row.get('market')),
            'property_building_amount': parse_money(row.get('building')),
            'property_land_amount': parse_money(row.get('land')),
            'property_taxable_value_amount': parse_money(row.get('taxable')),
            'monthly_tax_amount': None,
            'period_end_date': None,
            'period_start_date': None,
        })
        taxes.append(tax)
    return taxes


@dataclass
class SaleBundle:
    event: SaleEvent
    sale: Dict[str, Any]
    deed: Dict[str, Any]
    file: Dict[str, Any]


def extract_sales(record, info) -> List[SaleBundle]:
    bundles = []
    rows = [row for row in (record.get('sales') or []) if isinstance(row, dict)]
    for ordinal, row in enumerate(rows, 1):
        transfer_date = to_iso_date(row.get('date'))
        price = parse_money(row.get('price'))
        sale = dict(info)
        sale.update({
            'ownership_transfer_date': transfer_date,
            'purchase_price_amount': price if price is not None and price >= 0 else None,
        })

        deed_type = map_deed_type(row.get('deed_type'))
        deed = dict(info)
        if deed_type:
            deed['deed_type'] = deed_type

        instrument_url = row.get('instrument_url')
        file_obj = dict(info)
        file_obj.update({
            'document_type': DOCUMENT_TYPES.get(deed_type, 'ConveyanceDeed'),
            'file_format': None,
            'ipfs_url': None,
            'name': instrument_name(instrument_url, ordinal),
            'original_url': sanitize_http_url(instrument_url),
        })
        bundles.append(SaleBundle(SaleEvent(ordinal=ordinal, date=transfer_date), sale, deed, file_obj))
    return bundles


def owners_by_date_from_record(record):
    """Fallback owner map built from the raw grantee and owner strings of the input record"""
    owners_by_date = {}
    for row in record.get('sales') or []:
        if not isinstance(row, dict):
            continue
        iso_date = to_iso_date(row.get('date'))
        grantee = row.get('grantee')
        if not iso_date or is_empty_value(grantee):
            continue
        owners_by_date.setdefault(iso_date, []).extend(parse_owner_string(grantee))

    current = []
    raw_owners = record.get('owners') or []
    if isinstance(raw_owners, str):
        raw_owners = [raw_owners]
    for raw in raw_owners:
        current.extend(parse_owner_string(raw))
    if current:
        owners_by_date[CURRENT_KEY] = current
    return owners_by_date


def create_person(owner, info):
    person = dict(info)
    person.update({
        'birth_date': None,
        'first_name': fix_name(owner.first_name),
        'last_name': fix_name(owner.last_name),
        'middle_name': fix_name(owner.middle_name),
        'prefix_name': None,
        'suffix_name': None,
        'us_citizenship_status': None,
        'veteran_status': None,
    })
    return person


def create_company(owner, info):
    company = dict(info)
    company['name'] = owner.name.strip()
    return company


def layout_record(node: LayoutNode, info):
    out = dict(info)
    out.update(empty_layout_payload())
    out.update(node.payload)
    out['space_index'] = node.space_index
    out['layout_role'] = node.role
    return out


@dataclass
class PropertyPlan:
    parcel_id: str
    out_dir: str
    property: Dict[str, Any]
    address: Optional[Dict[str, Any]] = None
    taxes: List[Dict[str, Any]] = field(default_factory=list)
    sales: List[SaleBundle] = field(default_factory=list)
    owners: LinkResult = field(default_factory=LinkResult)
    owner_records: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    layouts: List[LayoutNode] = field(default_factory=list)
    layout_records: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    structure: Optional[Dict[str, Any]] = None
    utility: Optional[Dict[str, Any]] = None

    def entity_files(self) -> List[Tuple[str, Dict[str, Any]]]:
        files = [(PROPERTY_FILE, self.property)]
        if self.address is not None:
            files.append((ADDRESS_FILE, self.address))
        for idx, tax in enumerate(self.taxes, 1):
            files.append((f'tax_{idx}.json', tax))
        for bundle in self.sales:
            i = bundle.event.ordinal
            files.append((bundle.event.file_name, bundle.sale))
            files.append((f'deed_{i}.json', bundle.deed))
            files.append((f'file_{i}.json', bundle.file))
        files.extend(self.owner_records.items())
        if self.structure is not None:
            files.append((STRUCTURE_FILE, self.structure))
        if self.utility is not None:
            files.append((UTILITY_FILE, self.utility))
        files.extend(self.layout_records.items())
        return files


def plan_property(
    parcel_id,
    record,
    out_dir,
    owners_entry=None,
    layout_entry=None,
    seed_row=None,
    classifier: Optional[UseCodeClassifier] = None,
    validate=True,
) -> PropertyPlan:
    """Classify and assemble every record for one property without touching the disk"""
    classifier = classifier or UseCodeClassifier()
    info = source_info(parcel_id, seed_row, record)

    # Raises ClassificationError before anything is built or written
    entry = classifier.require(record.get('property_use'))

    plan = PropertyPlan(
        parcel_id=parcel_id,
        out_dir=out_dir,
        property=extract_property(record, parcel_id, entry, info),
        address=extract_address(record, info),
        taxes=extract_taxes(record, info),
        sales=extract_sales(record, info),
    )

    structure = record.get('structure')
    if isinstance(structure, dict) and structure:
        plan.structure = dict(info, **structure)
    utility = record.get('utility')
    if isinstance(utility, dict) and utility:
        plan.utility = dict(info, **utility)

    owners_by_date = None
    if isinstance(owners_entry, dict):
        owners_by_date = owners_entry.get('owners_by_date')
    if not isinstance(owners_by_date, dict):
        owners_by_date = owners_by_date_from_record(record)
    plan.owners = link_owners_by_date(owners_by_date, [bundle.event for bundle in plan.sales])
    for entity in plan.owners.entities:
        if entity.type == 'person':
            plan.owner_records[entity.file_name] = create_person(entity.owner, info)
        else:
            plan.owner_records[entity.file_name] = create_company(entity.owner, info)

    structured, flat, site_features = layout_inputs_from_json(layout_entry)
    builder = LayoutHierarchyBuilder(
        property_type=entry.property_type,
        fallback_areas=FallbackAreas(
            total_area_sq_ft=to_int_or_none(record.get('total_area')),
            livable_area_sq_ft=to_int_or_none(record.get('livable_area')),
        ),
    )
    plan.layouts = builder.build(structured, flat, site_features)
    for node in plan.layouts:
        plan.layout_records[node.file_name] = layout_record(node, info)

    if validate:
        validate_record('property', plan.property)
        for bundle in plan.sales:
            validate_record('sales', bundle.sale)
        for file_name, owner_record in plan.owner_records.items():
            validate_record('person' if file_name.startswith('person_') else 'company', owner_record)
        for layout in plan.layout_records.values():
            validate_record('layout', layout)

    logger.info(
        f"Planned {parcel_id}: {plan.property['property_type']}, {len(plan.sales)} sales, "
        f"{len(plan.owners.entities)} owners, {len(plan.layouts)} layouts"
    )
    return plan


def write_property_plan(plan: PropertyPlan, edge_writer: RelationshipEdgeWriter):
    """Clear stale generated files, then write entity and relationship documents"""
    out_dir = plan.out_dir
    ensure_directory(out_dir)
    cleanup_stale_outputs(out_dir)

    written = []
    for file_name, data in plan.entity_files():
        write_json(os.path.join(out_dir, file_name), data)
        written.append(file_name)

    property_ref = file_ref(PROPERTY_FILE)
    edges = 0

    if plan.address is not None:
        edges += edge_writer.write_edge(out_dir, 'relationship_property_address.json', property_ref, file_ref(ADDRESS_FILE))

    for idx in range(1, len(plan.taxes) + 1):
        edges += edge_writer.write_edge(out_dir, f'relationship_property_tax_{idx}.json', property_ref, file_ref(f'tax_{idx}.json'))

    for bundle in plan.sales:
        i = bundle.event.ordinal
        edges += edge_writer.write_edge(out_dir, f'relationship_sales_deed_{i}.json', bundle.event.ref, file_ref(f'deed_{i}.json'))
        edges += edge_writer.write_edge(out_dir, f'relationship_deed_file_{i}.json', file_ref(f'deed_{i}.json'), file_ref(f'file_{i}.json'))

    for file_name, edge in plan.owners.edge_files():
        edges += edge_writer.write_edge(out_dir, file_name, edge.sale.ref, edge.owner.ref)

    top_level = [node for node in plan.layouts if node.role in (ROLE_BUILDING, ROLE_SITE_FEATURE) and node.parent_id is None]
    for ordinal, node in enumerate(top_level, 1):
        edges += edge_writer.write_edge(out_dir, f'relationship_property_layout_{ordinal}.json', property_ref, node.ref)

    buildings = [node for node in plan.layouts if node.role == ROLE_BUILDING]
    if plan.structure is not None:
        if buildings:
            for ordinal, node in enumerate(buildings, 1):
                edges += edge_writer.write_edge(out_dir, f'relationship_layout_structure_{ordinal}.json', node.ref, file_ref(STRUCTURE_FILE))
        else:
            edges += edge_writer.write_edge(out_dir, 'relationship_property_structure.json', property_ref, file_ref(STRUCTURE_FILE))
    if plan.utility is not None:
        if buildings:
            for ordinal, node in enumerate(buildings, 1):
                edges += edge_writer.write_edge(out_dir, f'relationship_layout_utility_{ordinal}.json', node.ref, file_ref(UTILITY_FILE))
        else:
            edges += edge_writer.write_edge(out_dir, 'relationship_property_utility.json', property_ref, file_ref(UTILITY_FILE))

    edges += write_hierarchy_edges(out_dir, plan.layouts, edge_writer)

    logger.info(f"✅ Wrote {len(written)} entity files and {edges} relationship files to {out_dir}")
    return {'parcel_id': plan.parcel_id, 'entities': len(written), 'relationships': edges}


def extract_property_data(
    parcel_id,
    record,
    out_dir,
    owners_entry=None,
    layout_entry=None,
    seed_row=None,
    classifier: Optional[UseCodeClassifier] = None,
    edge_writer: Optional[RelationshipEdgeWriter] = None,
    validate=True,
):
    plan = plan_property(parcel_id, record, out_dir, owners_entry, layout_entry, seed_row, classifier, validate)
    if edge_writer is None:
        edge_writer = RelationshipEdgeWriter(validator=validate_record if validate else None)
    return write_property_plan(plan, edge_writer)
