"""
Pattern Library - Pure extractors for dates, amounts, phones, emails,
company names, VAT figures and bank identity.

Every function takes text and returns plain values or lists of dicts.
Compiled patterns are module constants; Python regex objects carry no
per-call match state so they are safe to share across threads.
"""

import re
from datetime import date
from typing import Dict, List, Optional

MONTHS = {
    'jan': 1, 'january': 1,
    'feb': 2, 'february': 2,
    'mar': 3, 'march': 3,
    'apr': 4, 'april': 4,
    'may': 5,
    'jun': 6, 'june': 6,
    'jul': 7, 'july': 7,
    'aug': 8, 'august': 8,
    'sep': 9, 'sept': 9, 'september': 9,
    'oct': 10, 'october': 10,
    'nov': 11, 'november': 11,
    'dec': 12, 'december': 12,
}

_MONTH_NAMES = (
    r'(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?'
    r'|Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)'
)
_WEEKDAYS = r'(?:Mon(?:day)?|Tue(?:s(?:day)?)?|Wed(?:nesday)?|Thu(?:r(?:s(?:day)?)?)?|Fri(?:day)?|Sat(?:urday)?|Sun(?:day)?)'

ISO_DATE = re.compile(r'^(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})$')
UK_DATE = re.compile(r'^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})$')
DAY_MONTH_DATE = re.compile(r'^(?:' + _WEEKDAYS + r'[,\s]+)?(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+),?\s*(\d{4})?$', re.I)
MONTH_DAY_DATE = re.compile(r'^(?:' + _WEEKDAYS + r'[,\s]+)?([A-Za-z]+)\s+(\d{1,2})(?:st|nd|rd|th)?,?\s*(\d{4})?$', re.I)
HAS_YEAR = re.compile(r'\b\d{4}\b|[/\-.]\d{2}$')

YEAR_FROM_STATEMENT = 'Year inferred from statement date'
YEAR_FROM_TODAY = 'Year inferred from current date'

DATE_PATTERNS = (
    re.compile(r'\b\d{1,2}[/.\-]\d{1,2}[/.\-]\d{2,4}\b'),
    re.compile(r'\b' + _WEEKDAYS + r'[,\s]+\d{1,2}(?:st|nd|rd|th)?(?:\s+' + _MONTH_NAMES + r')?(?:,?\s+\d{4})?\b', re.I),
    re.compile(r'\b\d{1,2}(?:st|nd|rd|th)?\s+' + _MONTH_NAMES + r'\b(?:,?\s+\d{4})?', re.I),
    re.compile(r'\b' + _MONTH_NAMES + r'\s+\d{1,2}(?:st|nd|rd|th)?\b(?:,?\s+\d{4})?', re.I),
)

STATEMENT_AMOUNT = re.compile(r'\d{1,3}(?:,\d{3})*\.\d{2}')
PRICE_PATTERNS = (
    re.compile(r'£\s?\d[\d,]*(?:\.\d{2})?'),
    re.compile(r'\b(\d+(?:,\d{3})*(?:\.\d{2})?)\s*(?:GBP|pounds?)\b', re.I),
)

PHONE_PATTERNS = (
    re.compile(r'(?:\+44\s?|0)7\d{3}[\s.\-]?\d{3}[\s.\-]?\d{3}'),
    re.compile(r'0800[\s.\-]?\d{3}[\s.\-]?\d{4}'),
    re.compile(r'(?:\+44\s?|0)\d{3,4}[\s.\-]?\d{3}[\s.\-]?\d{3,4}'),
)
EMAIL_PATTERN = re.compile(r'[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}')

SIGNATURE_PATTERNS = (
    re.compile(r'(?:kind regards|regards|thanks|best wishes|best|cheers|many thanks)[,\s]*\n+([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)*)', re.I),
    re.compile(r'(?:^|\n)([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)+)\n(?:[A-Z]|Director|Manager|Owner|Sales|Installer|Engineer)'),
)
LEGAL_SUFFIX_COMPANY = re.compile(
    r'([A-Z][A-Za-z&]*(?:[ \t]+(?:[A-Z][A-Za-z&]*|&))*[ \t]+'
    r'(?:Ltd|LTD|Limited|LIMITED|PLC|plc|Inc|LLC|Co\.|Company))(?![A-Za-z])')
TRADE_SUFFIX_COMPANY = re.compile(
    r'^([A-Z][A-Za-z &]+(?:LTD|LIMITED|PLC|Ltd|Limited|plc|Services|Contractors?|Plumbing|Electrical|Builders?|Trading|Solutions|Group))\b',
    re.M)
FROM_COMPANY = re.compile(r'(?:\bat|\bfrom)\s+([A-Z][A-Za-z&]+(?:[ \t]+[A-Z][A-Za-z&]+)*)')
CONTACT_NAME_PATTERNS = (
    re.compile(r'\b([A-Z][a-z]+)\s+is\s+our\s+(?:customer\s+)?(?:liaison|installation|project|site)\s*manager'),
    re.compile(r'\b(?:[Cc]ontact|[Ss]peak\s+to|[Cc]all)\s+([A-Z][a-z]+)'),
    re.compile(r'\b(?:[Mm]anager|[Ss]upervisor|[Ff]oreman)[:\s]+([A-Z][a-z]+)'),
    re.compile(r'\b([A-Z][a-z]+)\s+will\s+(?:be\s+)?(?:your|the)\s+(?:main\s+)?(?:contact|point)'),
)
CONTACT_NAME_STOPWORDS = {'The', 'Our', 'Your', 'This', 'That', 'Please', 'Thank', 'Dear', 'Any', 'Us', 'Me'}

UK_POSTCODE = re.compile(r'\b([A-Z]{1,2}\d{1,2}[A-Z]?\s*\d[A-Z]{2})\b')
ADDRESS_SKIP = re.compile(r'^(date|estimate|quote|invoice|tel|phone|email|to:|from:|ref|about\s*us)', re.I)
STREET_WORDS = re.compile(
    r'\b(road|street|avenue|lane|drive|close|way|court|place|grove|crescent|gardens?|terrace|square|hill|park|view|walk)\b', re.I)
REFERENCE_PATTERNS = (
    re.compile(r'(?:Estimate|Quote|Invoice)\s*(?:no\.?|number|#|ref)?[:\s]*([A-Za-z0-9\-/]+)', re.I),
    re.compile(r'(?:Ref(?:erence)?|No\.)[:\s#]*([A-Za-z0-9\-/]+)', re.I),
)
NUMERIC_DATE_ONLY = re.compile(r'^\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}$')

VAT_AMOUNT_PATTERNS = (
    re.compile(r'^\s*VAT£([\d,]+\.?\d*)', re.I | re.M),
    re.compile(r'^\s*VAT[:\s]+£\s*([\d,]+\.?\d*)', re.I | re.M),
    re.compile(r'\bVAT\s*@?\s*20%?[:\s]*£\s*([\d,]+\.?\d*)', re.I),
    re.compile(r'\bVAT\s*\(?20%?\)?[:\s]*£\s*([\d,]+\.?\d*)', re.I),
)
VAT_RATE_20 = re.compile(r'\b20(?:\.0+)?\s*%')

# Checked in order; the first bank named in the text wins
BANK_RULES = (
    ('Virgin Money', re.compile(r'Virgin Money', re.I)),
    ('Lloyds', re.compile(r'Lloyds', re.I)),
    ('HSBC', re.compile(r'HSBC', re.I)),
    ('NatWest', re.compile(r'NatWest', re.I)),
    ('Barclays', re.compile(r'Barclays', re.I)),
    ('Halifax', re.compile(r'Halifax', re.I)),
    ('Nationwide', re.compile(r'Nationwide', re.I)),
    ('Santander', re.compile(r'Santander', re.I)),
    ('Monzo', re.compile(r'Monzo', re.I)),
    ('Starling', re.compile(r'Starling', re.I)),
    ('Revolut', re.compile(r'Revolut', re.I)),
    ('Chase', re.compile(r'Chase', re.I)),
)
STATEMENT_DATE = re.compile(r'Statement date\s+(\d{1,2})\s+([A-Za-z]+)\s+(\d{4})', re.I)


# ---------------------------------------------------------------- dates

def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date_string(value: str, default_year: int = None,
                      statement_month: int = None) -> Optional[date]:
    """
    Parse a single date string in any supported form.

    Args:
        value: e.g. '2025-10-08', '08/10/2025', '8 Oct', 'Mon 7th January 2025'
        default_year: Year to use when the string has none
        statement_month: 1-12; a yearless date more than one month after it
            belongs to the previous year

    Returns:
        datetime.date or None when the string is not a recognisable date
    """
    trimmed = re.sub(r'\s+', ' ', str(value or '')).strip()
    if not trimmed:
        return None

    match = ISO_DATE.match(trimmed)
    if match:
        year, month, day = (int(p) for p in match.groups())
        return _safe_date(year, month, day)

    match = UK_DATE.match(trimmed)
    if match:
        day, month, year = (int(p) for p in match.groups())
        if year < 100:
            year += 2000
        return _safe_date(year, month, day)

    match = DAY_MONTH_DATE.match(trimmed)
    if match:
        day_str, month_name, year_str = match.groups()
    else:
        match = MONTH_DAY_DATE.match(trimmed)
        if not match:
            return None
        month_name, day_str, year_str = match.groups()

    month = MONTHS.get(month_name.lower())
    if month is None:
        return None
    if year_str:
        year = int(year_str)
    else:
        year = default_year or date.today().year
        if statement_month and month > statement_month + 1:
            year -= 1
    return _safe_date(year, month, int(day_str))


def has_explicit_year(value: str) -> bool:
    return bool(HAS_YEAR.search(str(value or '').strip()))


def to_iso(value: Optional[date]) -> str:
    return value.isoformat() if value else ''


def extract_dates(text: str, reference: date = None) -> List[Dict]:
    """
    Find every date mention in free text.

    Returns dicts with the matched ``text``, its ``start``/``end`` offsets and
    ``iso`` (empty when the mention has no year and no reference was given).
    """
    found = []
    seen = set()
    taken = []
    for pattern in DATE_PATTERNS:
        for match in pattern.finditer(text or ''):
            raw = match.group(0).strip()
            if raw.lower() in seen:
                continue
            if any(s <= match.start() < e for s, e in taken):
                continue
            seen.add(raw.lower())
            taken.append((match.start(), match.end()))
            parsed = None
            if has_explicit_year(raw) or reference:
                parsed = parse_date_string(
                    raw,
                    default_year=reference.year if reference else None,
                    statement_month=reference.month if reference else None,
                )
            found.append({
                'text': raw,
                'iso': to_iso(parsed),
                'start': match.start(),
                'end': match.end(),
            })
    found.sort(key=lambda item: item['start'])
    return found


# -------------------------------------------------------------- amounts

def parse_number(value) -> Optional[float]:
    """Strip everything but digits, sign and point; None when nothing numeric remains."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    negative = text.startswith('(') and text.endswith(')')
    cleaned = re.sub(r'[^0-9.\-]', '', text)
    if not cleaned or cleaned in ('-', '.', '-.'):
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return -abs(number) if negative else number


def extract_amounts(text: str) -> List[Dict]:
    """
    Currency amounts: '£1,234.56' or '1,234 GBP' / '250 pounds'.

    Non-numeric matches are skipped, never reported as zero.
    """
    found = []
    for pattern in PRICE_PATTERNS:
        for match in pattern.finditer(text or ''):
            raw = match.group(1) if match.groups() else match.group(0)
            amount = parse_number(raw.replace('£', ''))
            if amount is None:
                continue
            found.append({
                'text': match.group(0).strip(),
                'amount': abs(amount),
                'start': match.start(),
                'end': match.end(),
            })
    found.sort(key=lambda item: item['start'])
    return found


def extract_statement_amounts(line: str) -> List[float]:
    """Two-decimal amounts as printed in statement columns."""
    amounts = []
    for raw in STATEMENT_AMOUNT.findall(line or ''):
        number = parse_number(raw)
        if number is not None:
            amounts.append(number)
    return amounts


# ------------------------------------------------------- phones / email

def extract_phones(text: str) -> List[Dict]:
    """
    UK mobile, freephone and landline numbers.

    Each result keeps the ``display`` form as written and a ``digits`` form
    used for de-duplication.
    """
    phones = []
    seen = set()
    for pattern in PHONE_PATTERNS:
        for match in pattern.finditer(text or ''):
            display = re.sub(r'\s+', ' ', match.group(0)).strip()
            digits = re.sub(r'\D', '', display)
            if digits.startswith('44'):
                digits = '0' + digits[2:]
            if len(digits) < 10 or digits in seen:
                continue
            seen.add(digits)
            phones.append({'display': display, 'digits': digits})
    return phones


def extract_emails(text: str) -> List[str]:
    """Email addresses, de-duplicated case-insensitively in order of appearance."""
    emails = []
    seen = set()
    for match in EMAIL_PATTERN.findall(text or ''):
        key = match.lower()
        if key not in seen:
            seen.add(key)
            emails.append(match)
    return emails


# -------------------------------------------------------- people / firms

def extract_signature_name(text: str) -> Optional[str]:
    """Person's name from a 'Kind regards' style sign-off block."""
    for pattern in SIGNATURE_PATTERNS:
        match = pattern.search(text or '')
        if match and match.group(1):
            return match.group(1).strip()
    return None


def extract_company_name(text: str, max_lines: int = 20) -> Optional[str]:
    """
    Company name from the document header.

    Looks for legal-entity or trade suffixes within the first ``max_lines``
    lines, then falls back to the first capitalised name-like line.
    """
    lines = [line.strip() for line in re.split(r'[\n\r]+', text or '')][:max_lines]
    header = '\n'.join(lines)

    for pattern in (TRADE_SUFFIX_COMPANY, LEGAL_SUFFIX_COMPANY):
        match = pattern.search(header)
        if match:
            name = re.sub(r'^About\s*Us\s*', '', match.group(1).strip(), flags=re.I)
            if name:
                return name

    for line in lines:
        if not 5 < len(line) < 100:
            continue
        if re.match(r'^(date|estimate|quote|invoice|tel|phone|email|address|to:|from:|ref)', line, re.I):
            continue
        if re.match(r'^[A-Z][A-Za-z\s&\-.]+$', line):
            return line
    return None


def extract_sender_company(text: str) -> Optional[str]:
    """Company named anywhere in a message: legal suffix first, then 'at/from X'."""
    match = LEGAL_SUFFIX_COMPANY.search(text or '')
    if match:
        return match.group(1).strip()
    match = FROM_COMPANY.search(text or '')
    if match:
        return match.group(1).strip()
    return None


def extract_contact_names(text: str) -> List[str]:
    names = []
    for pattern in CONTACT_NAME_PATTERNS:
        for match in pattern.finditer(text or ''):
            name = match.group(1)
            if name not in CONTACT_NAME_STOPWORDS and name not in names:
                names.append(name)
    return names


def extract_postcode_address(text: str) -> Optional[str]:
    """Address block ending in a UK postcode, using up to three lines above it."""
    lines = re.split(r'[\n\r]+', text or '')
    for line_index, line in enumerate(lines):
        match = UK_POSTCODE.search(line)
        if not match:
            continue
        postcode = match.group(1)
        address_lines = []
        for candidate in lines[max(0, line_index - 3):line_index + 1]:
            candidate = candidate.strip()
            if not candidate or ADDRESS_SKIP.match(candidate):
                continue
            if (re.match(r'^\d+', candidate)
                    or STREET_WORDS.search(candidate)
                    or postcode in candidate
                    or (3 < len(candidate) < 40 and candidate[0].isupper()
                        and not re.match(r'^(mr|mrs|ms|miss|dr|dear)\b', candidate, re.I))):
                address_lines.append(candidate)
        if len(address_lines) >= 2:
            address = re.sub(r'\s+', ' ', ', '.join(address_lines)).strip()
            if len(address) > 10:
                return address
    return None


def extract_reference(text: str) -> Optional[str]:
    """Quote/estimate/invoice reference; dates and very short tokens are ignored."""
    for pattern in REFERENCE_PATTERNS:
        for match in pattern.finditer(text or ''):
            ref = match.group(1).strip()
            if len(ref) >= 3 and not NUMERIC_DATE_ONLY.match(ref) and re.search(r'\d', ref):
                return ref
    return None


# ------------------------------------------------------------------ VAT

def extract_vat_amount(text: str, ceiling_base: float = None) -> Optional[float]:
    """
    VAT amount from a standalone VAT line.

    Only lines starting with VAT (or 'VAT @ 20%') count, so 'Exc VAT' subtotals
    are never mistaken for VAT. A figure at or above 30% of ``ceiling_base``
    (the subtotal or total) is rejected as implausible.
    """
    limit = ceiling_base * 0.3 if ceiling_base else None
    for pattern in VAT_AMOUNT_PATTERNS:
        for match in pattern.finditer(text or ''):
            amount = parse_number(match.group(1))
            if amount and amount > 0 and (limit is None or amount < limit):
                return amount
    return None


def detect_vat_rate(text: str, subtotal: float = None, vat_amount: float = None) -> Optional[float]:
    if VAT_RATE_20.search(text or ''):
        return 20.0
    if subtotal and vat_amount:
        return round(vat_amount / subtotal * 1000) / 10
    return None


# ---------------------------------------------------------- bank identity

def detect_bank(text: str) -> Optional[str]:
    for name, pattern in BANK_RULES:
        if pattern.search(text or ''):
            return name
    return None


def parse_statement_date(text: str) -> Optional[date]:
    """'Statement date 01 December 2025' -> date(2025, 12, 1)."""
    match = STATEMENT_DATE.search(text or '')
    if not match:
        return None
    day_str, month_name, year_str = match.groups()
    month = MONTHS.get(month_name.lower())
    if month is None:
        return None
    return _safe_date(int(year_str), month, int(day_str))
