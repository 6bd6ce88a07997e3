from fastapi import APIRouter, Depends, Request
from sqlalchemy import and_, select
from sqlalchemy.orm import Query, Session

from patch_api.api.v1.systems import SYSTEMS_FIELDS, SYSTEMS_OPTS, query_systems
from patch_api.core.deps import get_account
from patch_api.core.errors import NotFound
from patch_api.db.session import get_db
from patch_api.models.account import RhAccount
from patch_api.models.advisory import AdvisoryAccountData, AdvisoryMetadata, AdvisoryType
from patch_api.models.system_advisory import SystemAdvisory
from patch_api.models.system_platform import SystemPlatform
from patch_api.services.field_registry import build_registry, field
from patch_api.services.listing import (
    ListOptions,
    export_common,
    list_common,
    parse_list_request,
    render_export,
    render_list,
    run_query,
)
from patch_api.services.rendering import negotiate

ADVISORIES_FIELDS = build_registry(
    "advisories",
    [
        field("id", AdvisoryMetadata.name),
        field("synopsis", AdvisoryMetadata.synopsis),
        field("description", AdvisoryMetadata.description, sortable=False),
        field("public_date", AdvisoryMetadata.public_date),
        field("advisory_type_name", AdvisoryType.name),
        field("severity", AdvisoryMetadata.severity_id),
        field("applicable_systems", AdvisoryAccountData.systems_applicable, default=0),
    ],
)

ADVISORIES_OPTS = ListOptions(
    registry=ADVISORIES_FIELDS,
    item_type="advisory",
    default_sort="-public_date",
    search_field="id",
)

ADVISORY_SYSTEMS_OPTS = ListOptions(
    registry=SYSTEMS_FIELDS,
    item_type="system",
    default_filters=SYSTEMS_OPTS.default_filters,
    default_sort="-last_upload",
    search_field="display_name",
    tag_join_key=SystemPlatform.inventory_id,
    allow_unlimited=True,
)

router = APIRouter()


def query_advisories(db: Session, account: str) -> Query:
    return (
        db.query(*ADVISORIES_FIELDS.select())
        .select_from(AdvisoryMetadata)
        .join(AdvisoryAccountData, AdvisoryAccountData.advisory_id == AdvisoryMetadata.id)
        .join(RhAccount, RhAccount.id == AdvisoryAccountData.rh_account_id)
        .join(AdvisoryType, AdvisoryType.id == AdvisoryMetadata.advisory_type_id)
        .filter(RhAccount.name == account, AdvisoryAccountData.systems_applicable > 0)
    )


def _advisory_id_or_404(db: Session, advisory_name: str) -> int:
    name = str(advisory_name or "").strip()
    advisory_id = run_query(
        "advisories",
        "lookup",
        lambda: db.execute(select(AdvisoryMetadata.id).where(AdvisoryMetadata.name == name)).scalar_one_or_none(),
    )
    if advisory_id is None:
        raise NotFound(f'Advisory "{name}" not found')
    return advisory_id


def query_advisory_systems(db: Session, account: str, advisory_id: int) -> Query:
    return query_systems(db, account).join(
        SystemAdvisory,
        and_(
            SystemAdvisory.system_id == SystemPlatform.id,
            SystemAdvisory.rh_account_id == SystemPlatform.rh_account_id,
            SystemAdvisory.advisory_id == advisory_id,
        ),
    )


@router.get("/advisories")
def list_advisories(request: Request, db: Session = Depends(get_db), account: str = Depends(get_account)):
    content_type = negotiate(request.headers.get("accept"))
    result = list_common(db, query_advisories(db, account), request, ADVISORIES_OPTS)
    return render_list(content_type, ADVISORIES_OPTS, result)


@router.get("/export/advisories")
def export_advisories(request: Request, db: Session = Depends(get_db), account: str = Depends(get_account)):
    content_type = negotiate(request.headers.get("accept"))
    rows = export_common(db, query_advisories(db, account), request, ADVISORIES_OPTS)
    return render_export(content_type, ADVISORIES_OPTS, rows)


@router.get("/advisories/{advisory_id}/systems")
def list_advisory_systems(
    advisory_id: str,
    request: Request,
    db: Session = Depends(get_db),
    account: str = Depends(get_account),
):
    content_type = negotiate(request.headers.get("accept"))
    req = parse_list_request(request, ADVISORY_SYSTEMS_OPTS)
    base_query = query_advisory_systems(db, account, _advisory_id_or_404(db, advisory_id))
    result = list_common(db, base_query, request, ADVISORY_SYSTEMS_OPTS, req=req)
    return render_list(content_type, ADVISORY_SYSTEMS_OPTS, result)


@router.get("/export/advisories/{advisory_id}/systems")
def export_advisory_systems(
    advisory_id: str,
    request: Request,
    db: Session = Depends(get_db),
    account: str = Depends(get_account),
):
    content_type = negotiate(request.headers.get("accept"))
    req = parse_list_request(request, ADVISORY_SYSTEMS_OPTS, export=True)
    base_query = query_advisory_systems(db, account, _advisory_id_or_404(db, advisory_id))
    rows = export_common(db, base_query, request, ADVISORY_SYSTEMS_OPTS, req=req)
    return render_export(content_type, ADVISORY_SYSTEMS_OPTS, rows)
