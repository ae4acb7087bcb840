import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from .relationships import file_ref

logger = logging.getLogger(__name__)

CURRENT_KEY = "current"

# Company detection keywords, matched as whole words
COMPANY_KEYWORDS = [
    'INC', 'LLC', 'LTD', 'CORP', 'CO', 'FOUNDATION', 'ALLIANCE', 'RESCUE', 'MISSION',
    'SOLUTIONS', 'SERVICES', 'SYSTEMS', 'COUNCIL', 'VETERANS', 'FIRST RESPONDERS', 'HEROES',
    'INITIATIVE', 'ASSOCIATION', 'GROUP', 'TRUST', 'PARTNERS', 'PROPERTIES', 'HOLDINGS',
    'ENTERPRISES', 'INVESTMENTS', 'FUND', 'BANK', 'SAVINGS', 'MORTGAGE', 'REALTY',
    'COMPANY', 'LP', 'LLP', 'PLC', 'PC', 'PLLC', 'TR', 'DIST', 'CHURCH', 'CITY', 'COUNTY',
]
COMPANY_ABBREVIATIONS = ['P.A.', 'P.C.', 'L.L.C.', 'N.A.']

COMPANY_PATTERN = re.compile(
    r'\b(?:' + '|'.join(re.escape(kw) for kw in COMPANY_KEYWORDS) + r')\b'
)


def _clean(value) -> str:
    if value is None:
        return ''
    return re.sub(r'\s+', ' ', str(value)).strip()


def is_company_name(name) -> bool:
    upper_name = _clean(name).upper()
    if any(abbr in upper_name for abbr in COMPANY_ABBREVIATIONS):
        return True
    return COMPANY_PATTERN.search(upper_name) is not None


def parse_owner_name(name):
    """Parse one assessor-style owner name ("LAST FIRST MIDDLE") into a mention dict"""
    name = _clean(name)
    if not name:
        return None

    if is_company_name(name):
        return {'type': 'company', 'name': name}

    # Joint ownership: parse only the first owner
    if '&' in name:
        name = name.split('&')[0].strip()
    parts = name.split()
    if not parts:
        return None

    if len(parts) == 1:
        return {'type': 'person', 'first_name': parts[0], 'last_name': None, 'middle_name': None}
    elif len(parts) == 2:
        return {'type': 'person', 'first_name': parts[1], 'last_name': parts[0], 'middle_name': None}
    else:
        return {'type': 'person', 'first_name': parts[1], 'middle_name': ' '.join(parts[2:]), 'last_name': parts[0]}


def parse_owner_string(text):
    """Split a raw owner line on '&' into mentions; bare given names inherit the first surname"""
    text = _clean(text)
    if not text:
        return []
    if is_company_name(text):
        return [parse_owner_name(text)]

    mentions = []
    primary_last_name = None
    for part in text.split('&'):
        part = part.strip()
        if not part:
            continue
        if primary_last_name and len(part.split()) == 1:
            mentions.append({'type': 'person', 'first_name': part, 'last_name': primary_last_name, 'middle_name': None})
            continue
        parsed = parse_owner_name(part)
        if parsed:
            if parsed['type'] == 'person' and primary_last_name is None:
                primary_last_name = parsed.get('last_name')
            mentions.append(parsed)
    return mentions


def _key_part(value) -> str:
    return _clean(value).lower()


@dataclass(frozen=True)
class PersonOwner:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    middle_name: Optional[str] = None
    type = 'person'

    @property
    def dedup_key(self) -> str:
        return '|'.join([_key_part(self.first_name), _key_part(self.middle_name), _key_part(self.last_name)])


@dataclass(frozen=True)
class CompanyOwner:
    name: str
    type = 'company'

    @property
    def dedup_key(self) -> str:
        return _key_part(re.sub(r'[.,]', ' ', self.name))


OwnerRecord = Union[PersonOwner, CompanyOwner]


def owner_from_mention(mention) -> Optional[OwnerRecord]:
    """Turn an owner mention dict into a typed owner; malformed mentions yield None"""
    if isinstance(mention, (PersonOwner, CompanyOwner)):
        return mention
    if not isinstance(mention, dict):
        logger.warning(f"Skipping owner mention that is not an object: {mention!r}")
        return None

    owner_type = mention.get('type')
    if owner_type == 'person':
        first = _clean(mention.get('first_name')) or None
        last = _clean(mention.get('last_name')) or None
        middle = _clean(mention.get('middle_name')) or None
        if not first and not last:
            logger.warning(f"Skipping person mention without a name: {mention!r}")
            return None
        return PersonOwner(first_name=first, last_name=last, middle_name=middle)
    if owner_type == 'company':
        name = _clean(mention.get('name'))
        if not name:
            logger.warning(f"Skipping company mention without a name: {mention!r}")
            return None
        return CompanyOwner(name=name)

    logger.warning(f"Skipping owner mention with unknown type {owner_type!r}")
    return None


@dataclass
class SaleEvent:
    ordinal: int
    date: Optional[str] = None

    @property
    def file_name(self) -> str:
        return f"sales_{self.ordinal}.json"

    @property
    def ref(self) -> str:
        return file_ref(self.file_name)


@dataclass
class OwnerEntity:
    owner: OwnerRecord
    index: int

    @property
    def type(self) -> str:
        return self.owner.type

    @property
    def key(self) -> Tuple[str, str]:
        return (self.owner.type, self.owner.dedup_key)

    @property
    def file_name(self) -> str:
        return f"{self.owner.type}_{self.index}.json"

    @property
    def ref(self) -> str:
        return file_ref(self.file_name)


@dataclass
class BuyerEdge:
    sale: SaleEvent
    owner: OwnerEntity
    rule: str  # "date" or "current"


@dataclass
class LinkResult:
    persons: List[OwnerEntity] = field(default_factory=list)
    companies: List[OwnerEntity] = field(default_factory=list)
    edges: List[BuyerEdge] = field(default_factory=list)

    @property
    def entities(self) -> List[OwnerEntity]:
        return self.persons + self.companies

    def edge_files(self) -> List[Tuple[str, BuyerEdge]]:
        """relationship_sales_history_<type>_<n>.json names, numbered per owner type"""
        counters = {'person': 0, 'company': 0}
        named = []
        for edge in self.edges:
            counters[edge.owner.type] += 1
            named.append((f"relationship_sales_history_{edge.owner.type}_{counters[edge.owner.type]}.json", edge))
        return named


def most_recent_sale(sales: List[SaleEvent]) -> Optional[SaleEvent]:
    """Latest dated sale (earliest in file order on ties); first sale when none is dated"""
    if not sales:
        return None
    latest = None
    for sale in sales:
        if sale.date and (latest is None or sale.date > latest.date):
            latest = sale
    return latest if latest is not None else sales[0]


class OwnerTransactionLinker:
    """Associates owners with the sale events that made them buyers"""

    def __init__(self):
        self._reset()

    def _reset(self):
        self._entities: Dict[Tuple[str, str], OwnerEntity] = {}
        self._result = LinkResult()
        self._linked = set()

    def _entity_for(self, owner: OwnerRecord) -> OwnerEntity:
        key = (owner.type, owner.dedup_key)
        entity = self._entities.get(key)
        if entity is None:
            bucket = self._result.persons if owner.type == 'person' else self._result.companies
            entity = OwnerEntity(owner=owner, index=len(bucket) + 1)
            bucket.append(entity)
            self._entities[key] = entity
        return entity

    def _link(self, sale: SaleEvent, entity: OwnerEntity, rule: str) -> bool:
        link_key = (sale.ordinal, entity.key)
        if link_key in self._linked:
            return False
        self._linked.add(link_key)
        self._result.edges.append(BuyerEdge(sale=sale, owner=entity, rule=rule))
        return True

    def link(self, sales_by_date: Dict[str, List[Any]], sales: List[SaleEvent], current_owners: List[Any]) -> LinkResult:
        self._reset()
        sale_dates = {sale.date for sale in sales if sale.date}
        for date_key in sales_by_date:
            if date_key != CURRENT_KEY and date_key not in sale_dates:
                logger.debug(f"No sale on {date_key}; owners of that date are not linked")

        for sale in sales:
            if not sale.date:
                continue
            for mention in sales_by_date.get(sale.date) or []:
                owner = owner_from_mention(mention)
                if owner is not None:
                    self._link(sale, self._entity_for(owner), 'date')

        latest = most_recent_sale(sales)
        for mention in current_owners or []:
            owner = owner_from_mention(mention)
            if owner is None:
                continue
            entity = self._entity_for(owner)
            if latest is not None:
                self._link(latest, entity, 'current')

        result = self._result
        logger.info(
            f"Linked {len(result.edges)} buyer edges for {len(result.persons)} persons "
            f"and {len(result.companies)} companies across {len(sales)} sales"
        )
        return result


def link_owners_by_date(owners_by_date: Dict[str, Any], sales: List[SaleEvent]) -> LinkResult:
    """Split an owners_by_date map into dated buckets and current owners, then link"""
    owners_by_date = owners_by_date if isinstance(owners_by_date, dict) else {}
    sales_by_date = {}
    for date_key, mentions in owners_by_date.items():
        if date_key == CURRENT_KEY:
            continue
        if not isinstance(mentions, list):
            logger.warning(f"Skipping owners for {date_key}: expected a list")
            continue
        sales_by_date[date_key] = mentions
    current = owners_by_date.get(CURRENT_KEY)
    return OwnerTransactionLinker().link(sales_by_date, sales, current if isinstance(current, list) else [])
