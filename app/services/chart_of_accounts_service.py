"""
ProLedger - Chart of Accounts Service

Tenant setup of the PUC chart of accounts, account maintenance, and the
per-tenant AccountingConfig role mapping used by automatic posting.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.accounting import (
    Account, AccountingConfig, AccountType, AccountNature, account_level_for_code,
)
from app.schemas.accounting import AccountCreate, AccountUpdate, AccountingConfigUpdate
from app.utils.error_handling import (
    AccountNotFoundException,
    AlreadyConfiguredException,
    DuplicateAccountCodeException,
    InvalidAccountsException,
    ValidationException,
)

logger = logging.getLogger(__name__)


A = AccountType
N = AccountNature

# PUC (Plan Unico de Cuentas) seed for retail businesses.
# Ordered so every parent precedes its children.
PUC_ACCOUNTS: List[Dict[str, Any]] = [
    # CLASE 1: ACTIVOS
    {"code": "1", "name": "Activos", "type": A.ASSET, "nature": N.DEBIT},
    {"code": "11", "name": "Disponible", "type": A.ASSET, "nature": N.DEBIT, "parent": "1"},
    {"code": "1105", "name": "Caja", "type": A.ASSET, "nature": N.DEBIT, "parent": "11"},
    {"code": "110505", "name": "Caja General", "type": A.ASSET, "nature": N.DEBIT, "parent": "1105"},
    {"code": "1110", "name": "Bancos", "type": A.ASSET, "nature": N.DEBIT, "parent": "11"},
    {"code": "111005", "name": "Bancos Nacionales", "type": A.ASSET, "nature": N.DEBIT, "parent": "1110", "bank": True},
    {"code": "13", "name": "Deudores", "type": A.ASSET, "nature": N.DEBIT, "parent": "1"},
    {"code": "1305", "name": "Clientes", "type": A.ASSET, "nature": N.DEBIT, "parent": "13"},
    {"code": "130505", "name": "Clientes Nacionales", "type": A.ASSET, "nature": N.DEBIT, "parent": "1305"},
    {"code": "1355", "name": "Anticipo de Impuestos y Contribuciones", "type": A.ASSET, "nature": N.DEBIT, "parent": "13"},
    {"code": "135515", "name": "Retencion en la Fuente", "type": A.ASSET, "nature": N.DEBIT, "parent": "1355"},
    {"code": "135517", "name": "Impuesto a las Ventas Retenido", "type": A.ASSET, "nature": N.DEBIT, "parent": "1355"},
    {"code": "14", "name": "Inventarios", "type": A.ASSET, "nature": N.DEBIT, "parent": "1"},
    {"code": "1435", "name": "Mercancias no Fabricadas por la Empresa", "type": A.ASSET, "nature": N.DEBIT, "parent": "14"},
    {"code": "143505", "name": "Inventario de Mercancias", "type": A.ASSET, "nature": N.DEBIT, "parent": "1435"},

    # CLASE 2: PASIVOS
    {"code": "2", "name": "Pasivos", "type": A.LIABILITY, "nature": N.CREDIT},
    {"code": "22", "name": "Proveedores", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "2"},
    {"code": "2205", "name": "Proveedores Nacionales", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "22"},
    {"code": "220505", "name": "Proveedores Nacionales", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "2205"},
    {"code": "23", "name": "Cuentas por Pagar", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "2"},
    {"code": "2365", "name": "Retencion en la Fuente", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "23"},
    {"code": "236540", "name": "Compras 2.5%", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "2365"},
    {"code": "24", "name": "Impuestos, Gravamenes y Tasas", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "2"},
    {"code": "2408", "name": "Impuesto sobre las Ventas por Pagar", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "24"},
    {"code": "240805", "name": "IVA por Pagar 19%", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "2408"},
    {"code": "240810", "name": "IVA por Pagar 5%", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "2408"},
    {"code": "2412", "name": "Impuesto sobre las Ventas Descontable", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "24"},
    {"code": "241205", "name": "IVA Descontable 19%", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "2412"},
    {"code": "241210", "name": "IVA Descontable 5%", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "2412"},
    {"code": "25", "name": "Obligaciones Laborales", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "2"},
    {"code": "2505", "name": "Salarios por Pagar", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "25"},
    {"code": "2510", "name": "Cesantias Consolidadas", "type": A.LIABILITY, "nature": N.CREDIT, "parent": "25"},

    # CLASE 3: PATRIMONIO
    {"code": "3", "name": "Patrimonio", "type": A.EQUITY, "nature": N.CREDIT},
    {"code": "31", "name": "Capital Social", "type": A.EQUITY, "nature": N.CREDIT, "parent": "3"},
    {"code": "3105", "name": "Capital Suscrito y Pagado", "type": A.EQUITY, "nature": N.CREDIT, "parent": "31"},
    {"code": "36", "name": "Resultados del Ejercicio", "type": A.EQUITY, "nature": N.CREDIT, "parent": "3"},
    {"code": "3605", "name": "Utilidad del Ejercicio", "type": A.EQUITY, "nature": N.CREDIT, "parent": "36"},
    {"code": "3610", "name": "Perdida del Ejercicio", "type": A.EQUITY, "nature": N.DEBIT, "parent": "36"},
    {"code": "37", "name": "Resultados de Ejercicios Anteriores", "type": A.EQUITY, "nature": N.CREDIT, "parent": "3"},
    {"code": "3705", "name": "Utilidades Acumuladas", "type": A.EQUITY, "nature": N.CREDIT, "parent": "37"},
    {"code": "3710", "name": "Perdidas Acumuladas", "type": A.EQUITY, "nature": N.DEBIT, "parent": "37"},

    # CLASE 4: INGRESOS
    {"code": "4", "name": "Ingresos", "type": A.REVENUE, "nature": N.CREDIT},
    {"code": "41", "name": "Operacionales", "type": A.REVENUE, "nature": N.CREDIT, "parent": "4"},
    {"code": "4135", "name": "Comercio al por Mayor y Menor", "type": A.REVENUE, "nature": N.CREDIT, "parent": "41"},
    {"code": "413505", "name": "Ventas de Mercancias", "type": A.REVENUE, "nature": N.CREDIT, "parent": "4135"},
    {"code": "42", "name": "No Operacionales", "type": A.REVENUE, "nature": N.CREDIT, "parent": "4"},
    {"code": "4295", "name": "Diversos", "type": A.REVENUE, "nature": N.CREDIT, "parent": "42"},
    {"code": "429505", "name": "Ajustes de Inventario (Sobrante)", "type": A.REVENUE, "nature": N.CREDIT, "parent": "4295"},

    # CLASE 5: GASTOS
    {"code": "5", "name": "Gastos", "type": A.EXPENSE, "nature": N.DEBIT},
    {"code": "51", "name": "Operacionales de Administracion", "type": A.EXPENSE, "nature": N.DEBIT, "parent": "5"},
    {"code": "5105", "name": "Gastos de Personal", "type": A.EXPENSE, "nature": N.DEBIT, "parent": "51"},
    {"code": "5115", "name": "Arrendamientos", "type": A.EXPENSE, "nature": N.DEBIT, "parent": "51"},
    {"code": "5120", "name": "Servicios", "type": A.EXPENSE, "nature": N.DEBIT, "parent": "51"},
    {"code": "5195", "name": "Diversos", "type": A.EXPENSE, "nature": N.DEBIT, "parent": "51"},
    {"code": "519505", "name": "Ajustes de Inventario (Faltante)", "type": A.EXPENSE, "nature": N.DEBIT, "parent": "5195"},
    {"code": "53", "name": "No Operacionales", "type": A.EXPENSE, "nature": N.DEBIT, "parent": "5"},
    {"code": "5305", "name": "Gastos Financieros", "type": A.EXPENSE, "nature": N.DEBIT, "parent": "53"},

    # CLASE 6: COSTOS DE VENTA
    {"code": "6", "name": "Costos de Venta", "type": A.COGS, "nature": N.DEBIT},
    {"code": "61", "name": "Costo de Ventas", "type": A.COGS, "nature": N.DEBIT, "parent": "6"},
    {"code": "6135", "name": "Comercio al por Mayor y Menor", "type": A.COGS, "nature": N.DEBIT, "parent": "61"},
    {"code": "613505", "name": "Costo de Mercancias Vendidas", "type": A.COGS, "nature": N.DEBIT, "parent": "6135"},
]

# Default role -> PUC code mapping written by setup
DEFAULT_ROLE_CODES: Dict[str, str] = {
    "cash_account_id": "110505",
    "bank_account_id": "111005",
    "accounts_receivable_id": "130505",
    "inventory_account_id": "143505",
    "accounts_payable_id": "220505",
    "tax_payable_id": "240805",
    "tax_deductible_id": "241205",
    "revenue_account_id": "413505",
    "cogs_account_id": "613505",
    "inventory_adjustment_id": "519505",
    "withholding_received_id": "135515",
    "withholding_payable_id": "236540",
    "payroll_expense_id": "5105",
    "payroll_payable_id": "2505",
}


class ChartOfAccountsService:
    """Service for chart of accounts and accounting configuration."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # TENANT SETUP
    # =========================================================================

    async def setup_chart_of_accounts(self, tenant_id: uuid.UUID) -> Dict[str, Any]:
        """
        Create the PUC chart of accounts and a default AccountingConfig.

        Fails if the tenant already has any account. Automatic posting is
        left disabled; the tenant turns it on through update_config.
        """
        existing = await self.db.scalar(
            select(func.count(Account.id)).where(Account.tenant_id == tenant_id)
        )
        if existing:
            raise AlreadyConfiguredException(existing)

        logger.info(f"Setting up chart of accounts for tenant {tenant_id}")

        code_to_id: Dict[str, uuid.UUID] = {}
        for seed in PUC_ACCOUNTS:
            account = Account(
                id=uuid.uuid4(),
                tenant_id=tenant_id,
                code=seed["code"],
                name=seed["name"],
                type=seed["type"],
                nature=seed["nature"],
                parent_id=code_to_id.get(seed.get("parent")),
                level=account_level_for_code(seed["code"]),
                is_system_account=True,
                is_bank_account=seed.get("bank", False),
            )
            self.db.add(account)
            code_to_id[seed["code"]] = account.id

        default_roles = {role: code_to_id.get(code) for role, code in DEFAULT_ROLE_CODES.items()}
        config = await self.get_config(tenant_id)
        if config is None:
            config = AccountingConfig(tenant_id=tenant_id, auto_generate_entries=False, **default_roles)
            self.db.add(config)
        else:
            # A config saved before setup keeps its flag and any roles it already maps
            for role, account_id in default_roles.items():
                if getattr(config, role) is None:
                    setattr(config, role, account_id)
        await self.db.flush()

        logger.info(f"Chart of accounts ready: {len(PUC_ACCOUNTS)} accounts created for tenant {tenant_id}")

        return {
            "message": f"Accounting configured successfully. {len(PUC_ACCOUNTS)} PUC accounts created.",
            "accounts_created": len(PUC_ACCOUNTS),
        }

    # =========================================================================
    # ACCOUNTING CONFIG
    # =========================================================================

    async def get_config(self, tenant_id: uuid.UUID) -> Optional[AccountingConfig]:
        """Get the tenant's accounting configuration, if any."""
        result = await self.db.execute(
            select(AccountingConfig).where(AccountingConfig.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def get_config_for_tenant(self, tenant_id: uuid.UUID) -> Optional[AccountingConfig]:
        """
        Configuration lookup for background callers.

        Same query as get_config; kept as its own entry point because the
        posting bridge passes a tenant id it received from the event, not
        one resolved from a request.
        """
        return await self.get_config(tenant_id)

    async def update_config(
        self,
        tenant_id: uuid.UUID,
        data: AccountingConfigUpdate,
    ) -> AccountingConfig:
        """Upsert role mappings and the auto-posting flag."""
        changes = data.model_dump(exclude_unset=True)

        role_ids = {
            value for key, value in changes.items()
            if key in AccountingConfig.ROLE_FIELDS and value is not None
        }
        if role_ids:
            await self._ensure_tenant_accounts(tenant_id, role_ids)

        config = await self.get_config(tenant_id)
        if config is None:
            config = AccountingConfig(tenant_id=tenant_id, auto_generate_entries=False)
            self.db.add(config)

        for key, value in changes.items():
            if key == "auto_generate_entries" and value is None:
                continue
            setattr(config, key, value)

        await self.db.flush()
        logger.info(f"Accounting config updated for tenant {tenant_id}: {sorted(changes)}")
        return config

    async def _ensure_tenant_accounts(self, tenant_id: uuid.UUID, account_ids: set) -> None:
        result = await self.db.execute(
            select(Account.id).where(
                and_(Account.tenant_id == tenant_id, Account.id.in_(account_ids))
            )
        )
        found = set(result.scalars().all())
        missing = account_ids - found
        if missing:
            raise InvalidAccountsException(missing)

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def get_accounts(
        self,
        tenant_id: uuid.UUID,
        search: Optional[str] = None,
        account_type: Optional[AccountType] = None,
        active_only: bool = False,
    ) -> List[Account]:
        """List accounts for a tenant ordered by code."""
        query = select(Account).where(Account.tenant_id == tenant_id)

        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(
                or_(
                    func.lower(Account.code).like(pattern),
                    func.lower(Account.name).like(pattern),
                )
            )
        if account_type:
            query = query.where(Account.type == account_type)
        if active_only:
            query = query.where(Account.is_active == True)  # noqa: E712

        result = await self.db.execute(query.order_by(Account.code))
        return list(result.scalars().all())

    async def get_account_tree(self, tenant_id: uuid.UUID) -> List[Dict[str, Any]]:
        """
        Build the account hierarchy as nested dicts.

        An account whose parent is not in the tenant's set is returned as a
        root instead of being dropped.
        """
        accounts = await self.get_accounts(tenant_id)
        nodes = {acc.id: {"account": acc, "children": []} for acc in accounts}

        roots = []
        for acc in accounts:
            node = nodes[acc.id]
            parent = nodes.get(acc.parent_id) if acc.parent_id else None
            if parent is None:
                roots.append(node)
            else:
                parent["children"].append(node)
        return roots

    async def get_account(self, tenant_id: uuid.UUID, account_id: uuid.UUID) -> Account:
        """Get an account by ID or raise."""
        result = await self.db.execute(
            select(Account).where(
                and_(Account.id == account_id, Account.tenant_id == tenant_id)
            )
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise AccountNotFoundException(account_id)
        return account

    async def get_account_by_code(self, tenant_id: uuid.UUID, code: str) -> Optional[Account]:
        """Get account by code."""
        result = await self.db.execute(
            select(Account).where(
                and_(Account.tenant_id == tenant_id, Account.code == code)
            )
        )
        return result.scalar_one_or_none()

    async def create_account(self, tenant_id: uuid.UUID, data: AccountCreate) -> Account:
        """Create a user-defined account. Level is derived from the code."""
        if await self.get_account_by_code(tenant_id, data.code):
            raise DuplicateAccountCodeException(data.code)

        if data.parent_id:
            await self.get_account(tenant_id, data.parent_id)

        account = Account(
            tenant_id=tenant_id,
            code=data.code,
            name=data.name,
            description=data.description,
            type=data.type,
            nature=data.nature,
            parent_id=data.parent_id,
            level=account_level_for_code(data.code),
            is_system_account=False,
            is_bank_account=data.is_bank_account,
        )
        self.db.add(account)
        await self.db.flush()
        logger.info(f"Account {account.code} created for tenant {tenant_id}")
        return account

    async def update_account(
        self,
        tenant_id: uuid.UUID,
        account_id: uuid.UUID,
        data: AccountUpdate,
    ) -> Account:
        """Update the mutable fields of an account."""
        account = await self.get_account(tenant_id, account_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("parent_id") is not None:
            if changes["parent_id"] == account.id:
                raise ValidationException(
                    "An account cannot be its own parent", field="parent_id",
                )
            await self.get_account(tenant_id, changes["parent_id"])

        for key, value in changes.items():
            if value is None and key in ("name", "is_bank_account", "is_active"):
                continue
            setattr(account, key, value)

        await self.db.flush()
        return account
