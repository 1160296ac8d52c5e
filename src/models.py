from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# matches the VARCHAR(50) columns and array elements
ColumnText = Annotated[str, Field(max_length=50)]


class Book(BaseModel):
    """A library record. Accepts camelCase payload keys or lower-case column keys."""

    model_config = ConfigDict(populate_by_name=True)

    isbn: str = Field(max_length=50)
    name: str = Field(max_length=50)
    authors: list[ColumnText]
    languages: list[ColumnText]
    countries: list[ColumnText]
    number_of_pages: int | None = Field(
        default=None,
        validation_alias=AliasChoices("numberOfPages", "numberofpages", "number_of_pages"),
        serialization_alias="numberOfPages",
    )
    release_date: str = Field(
        max_length=50,
        validation_alias=AliasChoices("releaseDate", "releasedate", "release_date"),
        serialization_alias="releaseDate",
    )

    def to_row(self) -> dict[str, Any]:
        return {
            "isbn": self.isbn,
            "name": self.name,
            "authors": self.authors,
            "languages": self.languages,
            "countries": self.countries,
            "numberofpages": self.number_of_pages,
            "releasedate": self.release_date,
        }

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
