"""
feeds/models.py -- Domain dataclasses for the vulnerability feed tables.

These are pure data containers with zero logic. Queries and aggregates live
in feeds/store.py; filtering and paging live in feeds/query.py.

The ingestion workers that populate these tables from CISA, NVD, and MITRE
are external collaborators. They write through FeedStore's add_* methods.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class KevRecord:
    """One entry of the CISA Known Exploited Vulnerabilities catalog.

    id is None before the record is written to the database.
    """

    cve_id: str
    vendor_project: str
    product: str
    vulnerability_name: str
    date_added: datetime
    short_description: str = ""
    required_action: str = ""
    due_date: Optional[datetime] = None
    known_ransomware_campaign_use: bool = False
    notes: Optional[str] = None
    id: Optional[int] = None


@dataclass
class NvdCve:
    """A CVE record from the NVD 2.0 API, flattened to the columns widgets use."""

    cve_id: str
    published: datetime
    last_modified: datetime
    vuln_status: str  # "Analyzed" | "Modified" | "Awaiting Analysis" | ...
    source_identifier: Optional[str] = None
    cvss_v3_base_score: Optional[float] = None
    cvss_v3_base_severity: Optional[str] = None  # "CRITICAL" | "HIGH" | "MEDIUM" | "LOW"
    cvss_v3_vector: Optional[str] = None
    description: Optional[str] = None
    id: Optional[int] = None


@dataclass
class MitreTechnique:
    """An ATT&CK technique. tactics holds tactic short names (e.g. "initial-access")."""

    technique_id: str  # T1234 or T1234.001
    name: str
    description: Optional[str] = None
    tactics: list[str] = field(default_factory=list)
    platforms: list[str] = field(default_factory=list)
    version: Optional[str] = None
    created: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    is_revoked: bool = False
    is_deprecated: bool = False
    created_at: Optional[datetime] = None  # set by store on insert when missing
    id: Optional[int] = None


@dataclass
class MitreTactic:
    tactic_id: str  # TA0001
    name: str
    short_name: str
    description: Optional[str] = None
    id: Optional[int] = None
