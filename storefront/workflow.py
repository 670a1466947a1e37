"""
Temporal workflows for the periodic order jobs: the bulk carrier
reconciliation sweep and the expiry of unpaid orders.

Each workflow is a thin wrapper around its use case. Every
repository and gateway is a workflow proxy, so each call is an activity;
the clock is ``workflow.now`` and the pause between orders is a durable
timer.
"""

from datetime import timedelta

from temporalio import workflow

from storefront.domain import (
    ExpiryRequest,
    ExpirySummary,
    SweepRequest,
    SweepSummary,
)
from storefront.notifications import NotificationDispatcher
from storefront.refund import RefundOrderUseCase
from storefront.repos.temporal.proxies import (
    WorkflowCarrierGatewayProxy,
    WorkflowInventoryRepositoryProxy,
    WorkflowNotificationServiceProxy,
    WorkflowOrderRepositoryProxy,
    WorkflowPaymentGatewayProxy,
)
from storefront.usecase import (
    BulkReconciliationUseCase,
    ExpirePendingOrdersUseCase,
    ReconcileOrderUseCase,
    SyncOrderUseCase,
)


@workflow.defn
class BulkReconciliationWorkflow:
    def __init__(self) -> None:
        self.current_step = "initialized"

    @workflow.query
    def get_current_step(self) -> str:
        """Query method to get the current workflow step"""
        return str(self.current_step)

    @workflow.run
    async def run(self, request: SweepRequest) -> SweepSummary:
        workflow.logger.info(
            "Starting bulk reconciliation workflow",
            extra={
                "workflow_id": workflow.info().workflow_id,
                "limit": request.limit,
                "staleness_minutes": request.staleness_minutes,
            },
        )

        self.current_step = "wiring_dependencies"
        order_repo = WorkflowOrderRepositoryProxy()
        inventory_repo = WorkflowInventoryRepositoryProxy()
        carrier_gateway = WorkflowCarrierGatewayProxy()
        payment_gateway = WorkflowPaymentGatewayProxy()
        notifier = NotificationDispatcher(WorkflowNotificationServiceProxy())

        refund_use_case = RefundOrderUseCase(
            order_repo=order_repo,
            payment_gateway=payment_gateway,
            retry_cooldown=timedelta(
                seconds=request.refund_retry_cooldown_seconds
            ),
            clock=workflow.now,
        )
        reconciler = ReconcileOrderUseCase(
            order_repo=order_repo,
            inventory_repo=inventory_repo,
            refund_use_case=refund_use_case,
            notifier=notifier,
            clock=workflow.now,
        )
        sync_use_case = SyncOrderUseCase(
            order_repo=order_repo,
            carrier_gateway=carrier_gateway,
            reconciler=reconciler,
            clock=workflow.now,
        )
        sweep = BulkReconciliationUseCase(
            order_repo=order_repo,
            sync_use_case=sync_use_case,
            staleness=timedelta(minutes=request.staleness_minutes),
            delay_seconds=request.delay_seconds,
            clock=workflow.now,
        )

        self.current_step = "sweeping"
        summary = await sweep.run_sweep(request.limit)

        self.current_step = "draining_notifications"
        # a workflow must not complete with activities still in flight
        await notifier.drain()

        self.current_step = "completed"
        workflow.logger.info(
            "Bulk reconciliation workflow completed",
            extra={
                "total": summary.total,
                "synced": summary.synced,
                "cancelled": summary.cancelled,
                "errors": summary.errors,
                "notification_failures": notifier.failure_count,
            },
        )
        return summary


@workflow.defn
class ExpirePendingOrdersWorkflow:
    def __init__(self) -> None:
        self.current_step = "initialized"

    @workflow.query
    def get_current_step(self) -> str:
        return str(self.current_step)

    @workflow.run
    async def run(self, request: ExpiryRequest) -> ExpirySummary:
        workflow.logger.info(
            "Starting pending order expiry workflow",
            extra={
                "workflow_id": workflow.info().workflow_id,
                "limit": request.limit,
                "ttl_hours": request.ttl_hours,
            },
        )

        self.current_step = "expiring"
        expiry = ExpirePendingOrdersUseCase(
            order_repo=WorkflowOrderRepositoryProxy(),
            inventory_repo=WorkflowInventoryRepositoryProxy(),
            ttl=timedelta(hours=request.ttl_hours),
            clock=workflow.now,
        )
        summary = await expiry.run(request.limit)

        self.current_step = "completed"
        workflow.logger.info(
            "Pending order expiry workflow completed",
            extra={
                "total": summary.total,
                "cancelled": summary.cancelled,
                "errors": summary.errors,
            },
        )
        return summary


__all__ = ["BulkReconciliationWorkflow", "ExpirePendingOrdersWorkflow"]
