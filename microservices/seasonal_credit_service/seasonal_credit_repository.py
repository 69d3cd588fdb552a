"""
Seasonal Credit Service Data Repository

Data access layer - PostgreSQL (Async)
Implements CampaignRepositoryProtocol, AllocationRepositoryProtocol and
LedgerRepositoryProtocol from protocols.py
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from core.config_manager import ConfigManager
from core.postgres_client import AsyncPostgresClient

from .models import (
    CreditBalance,
    CreditTransaction,
    SeasonalCreditAllocation,
    SeasonalCreditCampaign,
    campaign_from_record,
)
from .protocols import BalanceMutator

logger = logging.getLogger(__name__)


class SeasonalCreditRepository:
    """Seasonal credit data repository - PostgreSQL (Async)"""

    def __init__(self, config: Optional[ConfigManager] = None):
        if config is None:
            config = ConfigManager("seasonal_credit_service")

        service_config = config.get_service_config()

        # Priority: environment variable -> localhost fallback
        host, port = config.discover_service(
            service_name='postgres_service',
            default_host='localhost',
            default_port=5432,
            env_host_key='POSTGRES_HOST',
            env_port_key='POSTGRES_PORT'
        )

        logger.info(f"Connecting to PostgreSQL at {host}:{port}")
        self.db = AsyncPostgresClient(
            host=host,
            port=port,
            database=service_config.postgres_db,
            username=service_config.postgres_user,
            password=service_config.postgres_password,
            user_id="seasonal_credit_service",
            min_size=service_config.postgres_min_pool,
            max_size=service_config.postgres_max_pool,
        )
        self.schema = "seasonal_credit"
        self.campaigns_table = "seasonal_credit_campaigns"
        self.allocations_table = "seasonal_credit_allocations"
        self.balances_table = "credit_balances"
        self.transactions_table = "credit_transactions"

    async def initialize(self):
        """Initialize database connection"""
        await self.db.connect()
        logger.info("Seasonal credit repository initialized with PostgreSQL")

    async def close(self):
        """Close database connection"""
        await self.db.close()
        logger.info("Seasonal credit repository database connection closed")

    async def health_check(self) -> bool:
        result = await self.db.health_check()
        return bool(result and result.get("healthy"))

    # ====================
    # Campaigns
    # ====================

    async def create_campaign(self, campaign_data: Dict[str, Any]) -> SeasonalCreditCampaign:
        """Create a new campaign"""
        try:
            query = f'''
                INSERT INTO {self.schema}.{self.campaigns_table} (
                    campaign_id, campaign_name, description, credit_type,
                    total_credits, credits_per_tenant, distribution_method,
                    target_all_tenants, target_tenant_ids, allocation_mode, target_applications,
                    expires_at, send_notifications, notification_template,
                    distribution_status, distributed_count, failed_count,
                    is_active, created_by, metadata, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14,
                          $15, $16, $17, $18, $19, $20, $21, $22)
                RETURNING *
            '''

            params = [
                campaign_data["campaign_id"],
                campaign_data["campaign_name"],
                campaign_data.get("description"),
                campaign_data["credit_type"],
                campaign_data["total_credits"],
                campaign_data.get("credits_per_tenant"),
                campaign_data.get("distribution_method", "equal"),
                campaign_data.get("target_all_tenants", False),
                campaign_data.get("target_tenant_ids", []),
                campaign_data.get("allocation_mode", "primary_org"),
                campaign_data.get("target_applications", []),
                campaign_data["expires_at"],
                campaign_data.get("send_notifications", True),
                campaign_data.get("notification_template"),
                campaign_data.get("distribution_status", "pending"),
                campaign_data.get("distributed_count", 0),
                campaign_data.get("failed_count", 0),
                campaign_data.get("is_active", True),
                campaign_data.get("created_by"),
                json.dumps(campaign_data.get("metadata", {})),
                campaign_data["created_at"],
                campaign_data["updated_at"],
            ]

            async with self.db:
                result = await self.db.query_row(query, params=params)

            if result:
                return self._row_to_campaign(result)
            raise Exception("Failed to create seasonal credit campaign")

        except Exception as e:
            logger.error(f"Error creating seasonal credit campaign: {e}", exc_info=True)
            raise

    async def get_campaign_by_id(self, campaign_id: str) -> Optional[SeasonalCreditCampaign]:
        query = f'''
            SELECT * FROM {self.schema}.{self.campaigns_table}
            WHERE campaign_id = $1
        '''
        async with self.db:
            result = await self.db.query_row(query, params=[campaign_id])
        return self._row_to_campaign(result) if result else None

    async def list_campaigns(
        self,
        is_active: Optional[bool] = None,
        distribution_status: Optional[str] = None,
    ) -> List[SeasonalCreditCampaign]:
        conditions = []
        params: List[Any] = []

        if is_active is not None:
            params.append(is_active)
            conditions.append(f"is_active = ${len(params)}")

        if distribution_status:
            params.append(distribution_status)
            conditions.append(f"distribution_status = ${len(params)}")

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f'''
            SELECT * FROM {self.schema}.{self.campaigns_table}
            {where_clause}
            ORDER BY created_at DESC
        '''

        async with self.db:
            results = await self.db.query(query, params=params)
        return [self._row_to_campaign(row) for row in results] if results else []

    async def transition_status(
        self, campaign_id: str, from_status: str, to_status: str
    ) -> Optional[SeasonalCreditCampaign]:
        """Compare-and-swap on distribution_status in one statement"""
        query = f'''
            UPDATE {self.schema}.{self.campaigns_table}
            SET distribution_status = $1, updated_at = $2
            WHERE campaign_id = $3 AND distribution_status = $4
            RETURNING *
        '''
        async with self.db:
            result = await self.db.query_row(
                query, params=[to_status, datetime.now(timezone.utc), campaign_id, from_status]
            )
        return self._row_to_campaign(result) if result else None

    async def finalize_distribution(
        self,
        campaign_id: str,
        status: str,
        distributed_count: int,
        failed_count: int,
    ) -> Optional[SeasonalCreditCampaign]:
        now = datetime.now(timezone.utc)
        query = f'''
            UPDATE {self.schema}.{self.campaigns_table}
            SET distribution_status = $1,
                distributed_count = $2,
                failed_count = $3,
                distributed_at = $4,
                updated_at = $4
            WHERE campaign_id = $5 AND distribution_status = 'processing'
            RETURNING *
        '''
        async with self.db:
            result = await self.db.query_row(
                query, params=[status, distributed_count, failed_count, now, campaign_id]
            )
        return self._row_to_campaign(result) if result else None

    async def update_campaign_expiry(
        self, campaign_id: str, expires_at: datetime
    ) -> Optional[SeasonalCreditCampaign]:
        query = f'''
            UPDATE {self.schema}.{self.campaigns_table}
            SET expires_at = $1, updated_at = $2
            WHERE campaign_id = $3
            RETURNING *
        '''
        async with self.db:
            result = await self.db.query_row(
                query, params=[expires_at, datetime.now(timezone.utc), campaign_id]
            )
        return self._row_to_campaign(result) if result else None

    # ====================
    # Allocations
    # ====================

    async def create_allocation(self, alloc_data: Dict[str, Any]) -> SeasonalCreditAllocation:
        """Create an allocation record"""
        try:
            query = f'''
                INSERT INTO {self.schema}.{self.allocations_table} (
                    allocation_id, campaign_id, tenant_id, entity_id, entity_type,
                    target_application, allocated_credits, used_credits, expires_at,
                    distribution_status, distribution_error, is_active, is_expired,
                    allocated_at, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16)
                RETURNING *
            '''

            params = [
                alloc_data["allocation_id"],
                alloc_data["campaign_id"],
                alloc_data["tenant_id"],
                alloc_data["entity_id"],
                alloc_data.get("entity_type"),
                alloc_data.get("target_application"),
                alloc_data.get("allocated_credits", Decimal("0")),
                alloc_data.get("used_credits", Decimal("0")),
                alloc_data["expires_at"],
                alloc_data.get("distribution_status", "pending"),
                alloc_data.get("distribution_error"),
                alloc_data.get("is_active", True),
                alloc_data.get("is_expired", False),
                alloc_data.get("allocated_at"),
                alloc_data["created_at"],
                alloc_data["updated_at"],
            ]

            async with self.db:
                result = await self.db.query_row(query, params=params)

            if result:
                return SeasonalCreditAllocation(**result)
            raise Exception("Failed to create seasonal credit allocation")

        except Exception as e:
            logger.error(
                f"Error creating allocation for tenant {alloc_data.get('tenant_id')} "
                f"(campaign {alloc_data.get('campaign_id')}): {e}"
            )
            raise

    async def get_allocation_by_id(self, allocation_id: str) -> Optional[SeasonalCreditAllocation]:
        query = f'''
            SELECT * FROM {self.schema}.{self.allocations_table}
            WHERE allocation_id = $1
        '''
        async with self.db:
            result = await self.db.query_row(query, params=[allocation_id])
        return SeasonalCreditAllocation(**result) if result else None

    async def mark_allocation_expired(self, allocation_id: str) -> bool:
        query = f'''
            UPDATE {self.schema}.{self.allocations_table}
            SET is_active = FALSE, is_expired = TRUE, updated_at = $1
            WHERE allocation_id = $2 AND is_active = TRUE AND is_expired = FALSE
        '''
        async with self.db:
            count = await self.db.execute(query, params=[datetime.now(timezone.utc), allocation_id])
        return count > 0

    async def update_campaign_allocations_expiry(self, campaign_id: str, expires_at: datetime) -> int:
        query = f'''
            UPDATE {self.schema}.{self.allocations_table}
            SET expires_at = $1, updated_at = $2
            WHERE campaign_id = $3
        '''
        async with self.db:
            return await self.db.execute(
                query, params=[expires_at, datetime.now(timezone.utc), campaign_id]
            )

    async def get_allocations_expiring_between(
        self, start: datetime, end: datetime
    ) -> List[SeasonalCreditAllocation]:
        query = f'''
            SELECT * FROM {self.schema}.{self.allocations_table}
            WHERE is_active = TRUE AND is_expired = FALSE
              AND expires_at >= $1 AND expires_at <= $2
            ORDER BY expires_at ASC
        '''
        async with self.db:
            results = await self.db.query(query, params=[start, end])
        return [SeasonalCreditAllocation(**row) for row in results] if results else []

    async def get_expired_allocations(self, now: datetime) -> List[SeasonalCreditAllocation]:
        query = f'''
            SELECT * FROM {self.schema}.{self.allocations_table}
            WHERE is_active = TRUE AND is_expired = FALSE AND expires_at <= $1
            ORDER BY expires_at ASC
        '''
        async with self.db:
            results = await self.db.query(query, params=[now])
        return [SeasonalCreditAllocation(**row) for row in results] if results else []

    async def get_allocations_by_tenant(self, tenant_id: str) -> List[SeasonalCreditAllocation]:
        query = f'''
            SELECT * FROM {self.schema}.{self.allocations_table}
            WHERE tenant_id = $1
            ORDER BY allocated_at DESC NULLS LAST, created_at DESC
        '''
        async with self.db:
            results = await self.db.query(query, params=[tenant_id])
        return [SeasonalCreditAllocation(**row) for row in results] if results else []

    async def get_allocations_by_campaign(self, campaign_id: str) -> List[SeasonalCreditAllocation]:
        query = f'''
            SELECT * FROM {self.schema}.{self.allocations_table}
            WHERE campaign_id = $1
            ORDER BY created_at ASC
        '''
        async with self.db:
            results = await self.db.query(query, params=[campaign_id])
        return [SeasonalCreditAllocation(**row) for row in results] if results else []

    async def mark_allocation_warned(self, allocation_id: str, warned_at: datetime) -> bool:
        query = f'''
            UPDATE {self.schema}.{self.allocations_table}
            SET last_warned_at = $1, updated_at = $1
            WHERE allocation_id = $2
        '''
        async with self.db:
            count = await self.db.execute(query, params=[warned_at, allocation_id])
        return count > 0

    # ====================
    # Ledger
    # ====================

    async def mutate_balance(
        self, tenant_id: str, entity_id: str, mutator: BalanceMutator
    ) -> Tuple[Decimal, Decimal, CreditTransaction]:
        """Lock-or-create the balance row, apply the mutator, append the transaction"""
        now = datetime.now(timezone.utc)

        async with self.db.transaction() as conn:
            await conn.execute(
                f'''
                INSERT INTO {self.schema}.{self.balances_table} (
                    credit_id, tenant_id, entity_id, available_credits, reserved_credits,
                    is_active, created_at, last_updated_at
                ) VALUES ($1, $2, $3, 0, 0, TRUE, $4, $4)
                ON CONFLICT (tenant_id, entity_id) DO NOTHING
                ''',
                f"sc_cred_{uuid.uuid4().hex[:20]}", tenant_id, entity_id, now,
            )

            row = await conn.fetchrow(
                f'''
                SELECT available_credits FROM {self.schema}.{self.balances_table}
                WHERE tenant_id = $1 AND entity_id = $2
                FOR UPDATE
                ''',
                tenant_id, entity_id,
            )
            previous_balance = Decimal(row["available_credits"])

            new_balance, txn = mutator(previous_balance)

            await conn.execute(
                f'''
                UPDATE {self.schema}.{self.balances_table}
                SET available_credits = $1, last_updated_at = $2
                WHERE tenant_id = $3 AND entity_id = $4
                ''',
                new_balance, now, tenant_id, entity_id,
            )

            txn_row = await conn.fetchrow(
                f'''
                INSERT INTO {self.schema}.{self.transactions_table} (
                    transaction_id, tenant_id, entity_id, transaction_type, amount,
                    requested_amount, previous_balance, new_balance, operation_code, created_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING *
                ''',
                txn["transaction_id"], txn["tenant_id"], txn["entity_id"],
                txn["transaction_type"], txn["amount"], txn["requested_amount"],
                txn["previous_balance"], txn["new_balance"], txn["operation_code"],
                txn["created_at"],
            )

        return previous_balance, new_balance, CreditTransaction(**dict(txn_row))

    async def get_balance(self, tenant_id: str, entity_id: str) -> Optional[CreditBalance]:
        query = f'''
            SELECT * FROM {self.schema}.{self.balances_table}
            WHERE tenant_id = $1 AND entity_id = $2
        '''
        async with self.db:
            result = await self.db.query_row(query, params=[tenant_id, entity_id])
        return CreditBalance(**result) if result else None

    async def get_transactions(
        self, tenant_id: str, entity_id: Optional[str] = None
    ) -> List[CreditTransaction]:
        params: List[Any] = [tenant_id]
        condition = "tenant_id = $1"
        if entity_id:
            params.append(entity_id)
            condition += " AND entity_id = $2"

        query = f'''
            SELECT * FROM {self.schema}.{self.transactions_table}
            WHERE {condition}
            ORDER BY created_at ASC
        '''
        async with self.db:
            results = await self.db.query(query, params=params)
        return [CreditTransaction(**row) for row in results] if results else []

    # ====================
    # Helpers
    # ====================

    def _row_to_campaign(self, row: Dict[str, Any]) -> SeasonalCreditCampaign:
        """Convert database row to campaign model"""
        record = dict(row)
        metadata = record.get("metadata")
        if isinstance(metadata, str):
            try:
                record["metadata"] = json.loads(metadata)
            except (json.JSONDecodeError, TypeError):
                record["metadata"] = {}
        else:
            record["metadata"] = metadata or {}
        record["target_tenant_ids"] = list(record.get("target_tenant_ids") or [])
        record["target_applications"] = list(record.get("target_applications") or [])
        return campaign_from_record(record)


__all__ = ["SeasonalCreditRepository"]
