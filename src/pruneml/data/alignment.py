"""
In-memory sites and alignments.

A site maps each taxon to the character observed there. Characters are
resolved to sets of possible model states through an :class:`Ambiguous`
table, so an IUPAC code such as ``R`` can stand for either ``A`` or ``G``.
Sites compare by content, which lets an alignment collapse identical
columns into :class:`UniqueSite` entries with a multiplicity.
"""

from dataclasses import dataclass
from typing import Hashable, Iterable, Iterator, Mapping, Optional

from ..exceptions import AlignmentError

IUPAC_NUCLEOTIDE = {
    "N": "TCAG",
    "?": "TCAG",
    "-": "TCAG",
    "R": "AG",
    "Y": "TC",
    "M": "AC",
    "K": "TG",
    "S": "CG",
    "W": "TA",
    "B": "TCG",
    "D": "TAG",
    "H": "TCA",
    "V": "CAG",
}


class Ambiguous:
    """
    Table of ambiguous characters.

    Parameters
    ----------
    mapping : mapping, optional
        Character to iterable of possible states. Characters not in the
        table stand for themselves.

    Examples
    --------
    >>> sorted(Ambiguous.nucleotide().possible("R"))
    ['A', 'G']
    >>> Ambiguous().possible("A")
    frozenset({'A'})
    """

    def __init__(self, mapping: Optional[Mapping[str, Iterable[str]]] = None):
        self.mapping = {k: frozenset(v) for k, v in (mapping or {}).items()}

    @classmethod
    def nucleotide(cls) -> "Ambiguous":
        """IUPAC nucleotide codes over the states T, C, A and G."""
        return cls(IUPAC_NUCLEOTIDE)

    def possible(self, character: str) -> frozenset:
        found = self.mapping.get(character)
        if found is None:
            return frozenset([character])
        return found

    def __eq__(self, other) -> bool:
        if not isinstance(other, Ambiguous):
            return NotImplemented
        return self.mapping == other.mapping

    __hash__ = None


_NO_AMBIGUITY = Ambiguous()


class Site:
    """
    One alignment column.

    Parameters
    ----------
    characters : mapping
        Taxon name to observed character, in taxon order.
    site_class : hashable, optional
        Class used to choose the model and tree for this site.
    ambiguous : Ambiguous, optional
        Ambiguity table used by :meth:`character`.
    site_id : str, optional
        Label carried along for reporting; it takes no part in equality.

    Notes
    -----
    Two sites are equal when they have the same characters and the same
    class. The hash only covers the characters.
    """

    __slots__ = ("_characters", "site_class", "ambiguous", "site_id", "_hash")

    def __init__(
        self,
        characters: Mapping[str, str],
        site_class: Optional[Hashable] = None,
        ambiguous: Optional[Ambiguous] = None,
        site_id: Optional[str] = None,
    ):
        self._characters = dict(characters)
        self.site_class = site_class
        self.ambiguous = ambiguous if ambiguous is not None else _NO_AMBIGUITY
        self.site_id = site_id
        self._hash = hash(frozenset(self._characters.items()))

    @property
    def taxa(self) -> tuple:
        return tuple(self._characters)

    def raw_character(self, taxon: str) -> str:
        try:
            return self._characters[taxon]
        except KeyError:
            raise AlignmentError(f"No such taxa: {taxon}") from None

    def character(self, taxon: str) -> frozenset:
        """Possible states for ``taxon`` after resolving ambiguity."""
        return self.ambiguous.possible(self.raw_character(taxon))

    def items(self):
        return self._characters.items()

    def recode(self, mapping: Mapping[str, str]) -> "Site":
        """Copy with characters translated through ``mapping`` where present."""
        return Site(
            {t: mapping.get(c, c) for t, c in self._characters.items()},
            self.site_class,
            self.ambiguous,
            self.site_id,
        )

    def limit_to_taxa(self, taxa: Iterable[str]) -> "Site":
        return Site(
            {t: self.raw_character(t) for t in taxa},
            self.site_class,
            self.ambiguous,
            self.site_id,
        )

    def with_characters(self, extra: Mapping[str, str]) -> "Site":
        """Copy with additional taxa appended."""
        return Site({**self._characters, **extra}, self.site_class, self.ambiguous, self.site_id)

    def with_site_id(self, site_id: Optional[str]) -> "Site":
        if site_id == self.site_id:
            return self
        return Site(self._characters, self.site_class, self.ambiguous, site_id)

    def __len__(self) -> int:
        return len(self._characters)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Site):
            return NotImplemented
        return self.site_class == other.site_class and self._characters == other._characters

    def __hash__(self) -> int:
        return self._hash

    def __str__(self) -> str:
        text = "".join(self._characters.values())
        if self.site_class is not None:
            text = f"{text} ({self.site_class})"
        return text

    def __repr__(self) -> str:
        return f"Site({self._characters!r}, site_class={self.site_class!r})"


@dataclass(frozen=True)
class UniqueSite:
    """A distinct site and the number of times it occurs."""

    site: Site
    count: int


class Alignment:
    """
    Ordered collection of sites over a common set of taxa.

    Parameters
    ----------
    sites : iterable of Site
        Non-empty; every site must have the same taxa and either every site
        or none has a class.

    Raises
    ------
    AlignmentError
        If the sites are inconsistent.

    Examples
    --------
    >>> aln = Alignment.from_sequences({"a": "AAC", "b": "AAT"})
    >>> len(aln), [u.count for u in aln.unique_sites()]
    (3, [2, 1])
    """

    def __init__(self, sites: Iterable[Site]):
        sites = tuple(sites)
        if not sites:
            raise AlignmentError("Alignment has no sites")
        taxa = set(sites[0].taxa)
        classed = sites[0].site_class is not None
        for s in sites[1:]:
            if set(s.taxa) != taxa:
                raise AlignmentError("Sites have different taxa")
            if (s.site_class is not None) != classed:
                raise AlignmentError("Some sites have a class, some don't")
        self.sites = sites
        self._unique = None

    @classmethod
    def from_sequences(
        cls,
        sequences: Mapping[str, str],
        site_class: Optional[Hashable] = None,
        ambiguous: Optional[Ambiguous] = None,
    ) -> "Alignment":
        """
        Build an alignment from equal-length strings keyed by taxon.

        Each character is one site. ``site_class`` is applied to every site.
        """
        lengths = {len(s) for s in sequences.values()}
        if len(lengths) != 1:
            raise AlignmentError("Sequences have different lengths")
        n = lengths.pop()
        return cls(
            Site(
                {taxon: seq[i] for taxon, seq in sequences.items()},
                site_class,
                ambiguous,
                site_id=str(i + 1),
            )
            for i in range(n)
        )

    def __len__(self) -> int:
        return len(self.sites)

    def __iter__(self) -> Iterator[Site]:
        return iter(self.sites)

    def site(self, i: int) -> Site:
        return self.sites[i]

    @property
    def taxa(self) -> tuple:
        return self.sites[0].taxa

    @property
    def has_classes(self) -> bool:
        return self.sites[0].site_class is not None

    def unique_sites(self) -> list:
        """Distinct sites with their counts, in order of first occurrence."""
        if self._unique is None:
            counts: dict[Site, int] = {}
            for s in self.sites:
                counts[s] = counts.get(s, 0) + 1
            self._unique = [UniqueSite(s, c) for s, c in counts.items()]
        return self._unique

    def site_classes(self) -> set:
        return {s.site_class for s in self.sites}

    def class_size(self, site_class: Optional[Hashable]) -> int:
        return sum(1 for s in self.sites if s.site_class == site_class)

    def check(self, mapping: Mapping) -> None:
        """Raise AlignmentError if a site class has no entry in ``mapping``."""
        missing = [c for c in self.site_classes() if c not in mapping]
        if missing:
            raise AlignmentError(
                f"No model or tree for site class(es) {', '.join(map(str, missing))}"
            )

    def recode(self, mapping: Mapping[str, str]) -> "Alignment":
        return Alignment(s.recode(mapping) for s in self.sites)

    def limit_to_taxa(self, taxa: Iterable[str]) -> "Alignment":
        taxa = list(taxa)
        return Alignment(s.limit_to_taxa(taxa) for s in self.sites)

    def raw_freq(self, character: str) -> float:
        """Fraction of all characters in the alignment equal to ``character``."""
        total = sum(len(s) for s in self.sites)
        hits = sum(1 for s in self.sites for _, c in s.items() if c == character)
        return hits / total

    def average_length(self, gaps: Iterable[str] = ("-",)) -> float:
        """Mean number of non-gap characters per taxon."""
        gaps = set(gaps)
        filled = sum(1 for s in self.sites for _, c in s.items() if c not in gaps)
        return filled / len(self.taxa)

    def __repr__(self) -> str:
        return f"Alignment(sites={len(self.sites)}, taxa={len(self.taxa)})"
