"""Currency -- ISO 4217 registry used to validate budget version currencies."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str
    symbol: str | None = None

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount, for ``Decimal.quantize``."""
        return Decimal(1).scaleb(-self.decimal_places)

    def round(self, amount: Decimal) -> Decimal:
        """Round ``amount`` half-up to this currency's minor unit."""
        return amount.quantize(self.quantum, rounding=ROUND_HALF_UP)


def _table(rows: str, decimal_places: int) -> dict[str, CurrencyInfo]:
    out: dict[str, CurrencyInfo] = {}
    for row in rows.strip().splitlines():
        code, name = row.strip().split(" ", 1)
        out[code] = CurrencyInfo(code, decimal_places, name.strip())
    return out


# Symbols for the currencies the production budgeting screens offer.
_SYMBOLS: dict[str, str] = {
    "USD": "$", "EUR": "€", "GBP": "£", "CAD": "C$", "AUD": "A$",
    "JPY": "¥", "CNY": "¥", "INR": "₹", "MXN": "$", "BRL": "R$",
    "KRW": "₩", "NZD": "NZ$", "CHF": "CHF", "SEK": "kr", "NOK": "kr",
    "DKK": "kr", "ZAR": "R", "AED": "د.إ", "SGD": "S$", "HKD": "HK$",
}

_ZERO_DECIMAL = """
BIF Burundian Franc
CLP Chilean Peso
DJF Djiboutian Franc
GNF Guinean Franc
ISK Icelandic Krona
JPY Japanese Yen
KMF Comorian Franc
KRW South Korean Won
PYG Paraguayan Guarani
RWF Rwandan Franc
UGX Ugandan Shilling
UYI Uruguay Peso en Unidades Indexadas
VND Vietnamese Dong
VUV Vanuatu Vatu
XAF Central African CFA Franc
XOF West African CFA Franc
XPF CFP Franc
XAG Silver
XAU Gold
XDR Special Drawing Rights
XPD Palladium
XPT Platinum
XTS Testing Code
XXX No currency
"""

_THREE_DECIMAL = """
BHD Bahraini Dinar
IQD Iraqi Dinar
JOD Jordanian Dinar
KWD Kuwaiti Dinar
LYD Libyan Dinar
OMR Omani Rial
TND Tunisian Dinar
"""

_FOUR_DECIMAL = """
CLF Chilean Unidad de Fomento
UYW Unidad Previsional
"""

_TWO_DECIMAL = """
AED UAE Dirham
AFN Afghan Afghani
ALL Albanian Lek
AMD Armenian Dram
ANG Netherlands Antillean Guilder
AOA Angolan Kwanza
ARS Argentine Peso
AUD Australian Dollar
AWG Aruban Florin
AZN Azerbaijan Manat
BAM Convertible Mark
BBD Barbadian Dollar
BDT Bangladeshi Taka
BGN Bulgarian Lev
BMD Bermudian Dollar
BND Brunei Dollar
BOB Bolivian Boliviano
BRL Brazilian Real
BSD Bahamian Dollar
BTN Bhutanese Ngultrum
BWP Botswana Pula
BYN Belarusian Ruble
BZD Belize Dollar
CAD Canadian Dollar
CDF Congolese Franc
CHF Swiss Franc
CNY Chinese Yuan
COP Colombian Peso
CRC Costa Rican Colon
CUP Cuban Peso
CVE Cape Verdean Escudo
CZK Czech Koruna
DKK Danish Krone
DOP Dominican Peso
DZD Algerian Dinar
EGP Egyptian Pound
ERN Eritrean Nakfa
ETB Ethiopian Birr
EUR Euro
FJD Fijian Dollar
FKP Falkland Islands Pound
GBP Pound Sterling
GEL Georgian Lari
GHS Ghanaian Cedi
GIP Gibraltar Pound
GMD Gambian Dalasi
GTQ Guatemalan Quetzal
GYD Guyanese Dollar
HKD Hong Kong Dollar
HNL Honduran Lempira
HTG Haitian Gourde
HUF Hungarian Forint
IDR Indonesian Rupiah
ILS Israeli New Shekel
INR Indian Rupee
IRR Iranian Rial
JMD Jamaican Dollar
KES Kenyan Shilling
KGS Kyrgyzstani Som
KHR Cambodian Riel
KPW North Korean Won
KYD Cayman Islands Dollar
KZT Kazakhstani Tenge
LAK Lao Kip
LBP Lebanese Pound
LKR Sri Lankan Rupee
LRD Liberian Dollar
LSL Lesotho Loti
MAD Moroccan Dirham
MDL Moldovan Leu
MGA Malagasy Ariary
MKD Macedonian Denar
MMK Myanmar Kyat
MNT Mongolian Tugrik
MOP Macanese Pataca
MRU Mauritanian Ouguiya
MUR Mauritian Rupee
MVR Maldivian Rufiyaa
MWK Malawian Kwacha
MXN Mexican Peso
MYR Malaysian Ringgit
MZN Mozambican Metical
NAD Namibian Dollar
NGN Nigerian Naira
NIO Nicaraguan Cordoba
NOK Norwegian Krone
NPR Nepalese Rupee
NZD New Zealand Dollar
PAB Panamanian Balboa
PEN Peruvian Sol
PGK Papua New Guinean Kina
PHP Philippine Peso
PKR Pakistani Rupee
PLN Polish Zloty
QAR Qatari Riyal
RON Romanian Leu
RSD Serbian Dinar
RUB Russian Ruble
SAR Saudi Riyal
SBD Solomon Islands Dollar
SCR Seychellois Rupee
SDG Sudanese Pound
SEK Swedish Krona
SGD Singapore Dollar
SHP Saint Helena Pound
SLE Sierra Leonean Leone
SOS Somali Shilling
SRD Surinamese Dollar
SSP South Sudanese Pound
STN Dobra
SVC Salvadoran Colon
SYP Syrian Pound
SZL Lilangeni
THB Thai Baht
TJS Tajikistani Somoni
TMT Turkmenistan Manat
TOP Tongan Paanga
TRY Turkish Lira
TTD Trinidad and Tobago Dollar
TWD New Taiwan Dollar
TZS Tanzanian Shilling
UAH Ukrainian Hryvnia
USD US Dollar
UYU Uruguayan Peso
UZS Uzbekistani Som
VES Venezuelan Bolivar Soberano
WST Samoan Tala
XCD East Caribbean Dollar
YER Yemeni Rial
ZAR South African Rand
ZMW Zambian Kwacha
ZWL Zimbabwean Dollar
"""


def _build() -> dict[str, CurrencyInfo]:
    table: dict[str, CurrencyInfo] = {}
    for rows, places in (
        (_TWO_DECIMAL, 2),
        (_ZERO_DECIMAL, 0),
        (_THREE_DECIMAL, 3),
        (_FOUR_DECIMAL, 4),
    ):
        table.update(_table(rows, places))
    for code, symbol in _SYMBOLS.items():
        info = table[code]
        table[code] = CurrencyInfo(info.code, info.decimal_places, info.name, symbol)
    return table


class CurrencyRegistry:
    """Registry of ISO 4217 currencies with their minor-unit precision."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = _build()

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @staticmethod
    def _normalize(code: str) -> str:
        if not code or not isinstance(code, str):
            return ""
        return code.upper().strip()

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is valid ISO 4217 (case-insensitive)."""
        return cls._normalize(code) in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        """Get currency information by code."""
        return cls._CURRENCIES.get(cls._normalize(code))

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Get decimal places for a currency; unknown codes use the default."""
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def symbol(cls, code: str) -> str:
        """Display symbol for a currency, falling back to the code itself."""
        info = cls.get_info(code)
        if info is None:
            return code
        return info.symbol or info.code

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code.

        Raises:
            ValueError: If the code is not a known ISO 4217 code.
        """
        normalized = cls._normalize(code)
        if normalized not in cls._CURRENCIES:
            raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")
        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        """Get all valid currency codes."""
        return frozenset(cls._CURRENCIES)
