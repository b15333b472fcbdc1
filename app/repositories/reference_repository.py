"""Read-only access to the Country/Province reference tables."""
from typing import List, Optional

from sqlalchemy import select

from database import Country, Province
from .base import BaseRepository


class ReferenceDataRepository(BaseRepository):
    """Looks up countries and provinces.

    Provinces are keyed by ``(code, country_code)``: ``ON`` exists for
    ``CA`` only, ``CA`` (California) for ``US`` only.
    """

    def province_exists(self, province_code: str, country_code: str) -> bool:
        return self.find_province(province_code, country_code) is not None

    def find_province(self, province_code: str, country_code: str) -> Optional[Province]:
        return self._read(lambda: self._db.get(Province, (province_code, country_code)))

    def find_country(self, country_code: str) -> Optional[Country]:
        return self._read(lambda: self._db.get(Country, country_code))

    def list_countries(self) -> List[Country]:
        return self._read(
            lambda: list(self._db.scalars(select(Country).order_by(Country.name)))
        )

    def list_provinces(self, country_code: str) -> List[Province]:
        return self._read(lambda: list(self._db.scalars(
            select(Province)
            .where(Province.country_code == country_code)
            .order_by(Province.name)
        )))
