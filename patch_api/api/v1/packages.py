from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Query, Session

from patch_api.core.deps import get_account
from patch_api.db.session import get_db
from patch_api.models.account import RhAccount
from patch_api.models.package import PackageAccountData, PackageName
from patch_api.services.field_registry import build_registry, field
from patch_api.services.listing import ListOptions, export_common, list_common, render_export, render_list
from patch_api.services.rendering import negotiate

PACKAGES_FIELDS = build_registry(
    "packages",
    [
        field("name", PackageName.name),
        field("summary", PackageName.summary, sortable=False),
        field("systems_installed", PackageAccountData.systems_installed, default=0),
        field("systems_updatable", PackageAccountData.systems_updatable, default=0),
    ],
    id_field="name",
)

PACKAGES_OPTS = ListOptions(
    registry=PACKAGES_FIELDS,
    item_type="package",
    default_sort="name",
    search_field="name",
)

router = APIRouter()


def query_packages(db: Session, account: str) -> Query:
    return (
        db.query(*PACKAGES_FIELDS.select())
        .select_from(PackageName)
        .join(PackageAccountData, PackageAccountData.package_name_id == PackageName.id)
        .join(RhAccount, RhAccount.id == PackageAccountData.rh_account_id)
        .filter(RhAccount.name == account, PackageAccountData.systems_installed > 0)
    )


@router.get("/packages")
def list_packages(request: Request, db: Session = Depends(get_db), account: str = Depends(get_account)):
    content_type = negotiate(request.headers.get("accept"))
    result = list_common(db, query_packages(db, account), request, PACKAGES_OPTS)
    return render_list(content_type, PACKAGES_OPTS, result)


@router.get("/export/packages")
def export_packages(request: Request, db: Session = Depends(get_db), account: str = Depends(get_account)):
    content_type = negotiate(request.headers.get("accept"))
    rows = export_common(db, query_packages(db, account), request, PACKAGES_OPTS)
    return render_export(content_type, PACKAGES_OPTS, rows)
