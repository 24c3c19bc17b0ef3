"""
Hypothesis-based fuzzing of the order lifecycle and the stock ledger.

Properties checked after every generated step:
- Stock never goes negative and ``totalStock`` always equals the sum of
  the per-size counts.
- An order is live in at most one lifecycle partition and the locator
  table agrees with the documents (reconciliation stays clean).
- Stock returned by cancel and removal equals the quantities of the
  orders that took those paths.

All examples of one test share a session, so every example works on
freshly generated ids.
"""

from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from lifecycle_kernel.domain import partitions
from lifecycle_kernel.exceptions import InvalidStockError, LifecycleKernelError
from lifecycle_kernel.services.inventory_ledger import SIZES

FUZZ_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)

stock_ops = st.lists(
    st.tuples(st.sampled_from(SIZES), st.integers(min_value=-15, max_value=15)),
    max_size=25,
)

ORDER_ACTIONS = ("pack", "ship", "receive", "cancel", "remove")

# action -> (stage it applies to, stage it leads to); None means deleted
EXPECTED_MOVES = {
    "pack": ({partitions.ORDERS}, partitions.TO_SHIP),
    "ship": ({partitions.TO_SHIP}, partitions.TO_RECEIVE),
    "receive": ({partitions.TO_RECEIVE}, partitions.COMPLETED),
    "cancel": ({partitions.ORDERS}, partitions.CANCELLED),
    "remove": (set(partitions.REMOVABLE_ORDER_PARTITIONS), None),
}

order_steps = st.lists(
    st.tuples(st.integers(min_value=0, max_value=2), st.sampled_from(ORDER_ACTIONS)),
    min_size=1,
    max_size=20,
)


def _product_payload(product_id, initial):
    stock = {size: initial.get(size, 0) for size in SIZES}
    return {"productId": product_id, "stock": stock, "totalStock": sum(stock.values())}


class TestStockInvariant:
    @FUZZ_SETTINGS
    @given(
        initial=st.fixed_dictionaries({size: st.integers(0, 20) for size in SIZES}),
        ops=stock_ops,
    )
    def test_stock_never_negative_and_total_consistent(self, services, initial, ops):
        product_id = f"P-{uuid4().hex[:10]}"
        services.store.insert(partitions.PRODUCTS, product_id, _product_payload(product_id, initial))
        model = dict(initial)

        for size, delta in ops:
            if model[size] + delta < 0:
                try:
                    services.ledger.adjust_stock(product_id, size, delta)
                except InvalidStockError:
                    pass
                else:
                    raise AssertionError(f"{size}{delta:+d} accepted below zero")
            else:
                level = services.ledger.adjust_stock(product_id, size, delta)
                model[size] += delta
                assert level.size_stock == model[size]

            payload = services.store.require(partitions.PRODUCTS, product_id).payload
            assert payload["stock"] == model
            assert payload["totalStock"] == sum(model.values())
            assert all(count >= 0 for count in payload["stock"].values())


class TestOrderPlacementInvariant:
    @FUZZ_SETTINGS
    @given(steps=order_steps)
    def test_orders_live_in_one_partition(self, services, admin_actor, steps):
        tag = uuid4().hex[:10]
        product_id = f"P-{tag}"
        services.store.insert(partitions.PRODUCTS, product_id, _product_payload(product_id, {"S": 10}))

        order_ids = [f"ORD-{tag}-{n}" for n in range(3)]
        stage = {}
        for order_id in order_ids:
            services.orders.place(
                {
                    "orderId": order_id,
                    "userId": "U1",
                    "items": [{"productId": product_id, "size": "S", "quantity": 1, "price": 5}],
                    "total": 5,
                }
            )
            stage[order_id] = partitions.ORDERS
        returned = 0

        for index, action in steps:
            order_id = order_ids[index]
            current = stage[order_id]
            sources, target = EXPECTED_MOVES[action]
            allowed = current in sources

            try:
                if action == "remove":
                    services.orders.remove(
                        order_id, admin_actor, current or partitions.ORDERS
                    )
                elif action == "cancel":
                    services.orders.cancel(order_id, admin_actor)
                else:
                    services.orders.transition(order_id, action, admin_actor)
            except LifecycleKernelError:
                assert not allowed, f"{action} rejected from {current}"
            else:
                assert allowed, f"{action} accepted from {current}"
                stage[order_id] = target
                if action in ("cancel", "remove"):
                    returned += 1

            for oid in order_ids:
                live = [
                    d.collection
                    for d in services.store.find_in(partitions.ORDER_PARTITIONS, oid)
                ]
                assert live == ([stage[oid]] if stage[oid] else [])
                locator = services.store.locate_order(oid)
                assert (locator.partition if locator else None) == stage[oid]

        product = services.store.require(partitions.PRODUCTS, product_id).payload
        assert product["stock"]["S"] == 10 + returned
        assert services.reconciliation.reconcile_orders().is_consistent
