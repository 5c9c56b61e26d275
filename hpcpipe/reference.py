# -*- coding: utf-8 -*-
"""
Closed sets of reference genome builds and sequencing types.

Tool configs give these as free strings ('hg38', 'GRCh37', 'exome', ...).
They are parsed once into an enum member so every later decision is a
lookup on a known value, and an unknown value fails at config time instead
of silently falling through a string comparison.
"""
from enum import Enum

from . import ClusterError


class UnknownBuildError(ClusterError):

    """Raised for unknown reference builds or sequencing types."""

    pass


class RefBuild(Enum):

    """Reference genome build."""

    HG19   = 'hg19'
    HG38   = 'hg38'
    GRCH37 = 'GRCh37'
    GRCH38 = 'GRCh38'

    @classmethod
    def parse(cls, value):
        """Return the member matching value, case insensitive."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).lower() == member.value.lower():
                return member
        raise UnknownBuildError(
            'Unrecognized reference type {}, should be one of {}'
            .format(value, [m.value for m in cls])
        )

    @property
    def chr_prefix(self):
        """True if chromosome names carry a 'chr' prefix (UCSC style)."""
        return self in (RefBuild.HG19, RefBuild.HG38)

    @property
    def assembly(self):
        """The GRC assembly this build is based on, 37 or 38."""
        return 37 if self in (RefBuild.HG19, RefBuild.GRCH37) else 38


class SeqType(Enum):

    """Sequencing strategy."""

    WGS      = 'wgs'
    EXOME    = 'exome'
    TARGETED = 'targeted'
    RNA      = 'rna'

    @classmethod
    def parse(cls, value):
        """Return the member matching value, accepts a few common aliases."""
        if isinstance(value, cls):
            return value
        aliases = {'wxs': 'exome', 'wes': 'exome', 'panel': 'targeted',
                   'rnaseq': 'rna', 'rna-seq': 'rna', 'genome': 'wgs'}
        val = str(value).lower()
        val = aliases.get(val, val)
        for member in cls:
            if val == member.value:
                return member
        raise UnknownBuildError(
            'Unrecognized sequencing type {}, should be one of {}'
            .format(value, [m.value for m in cls])
        )
