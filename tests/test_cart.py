from decimal import Decimal

import pytest
from pydantic import ValidationError

from conftest import make_product
from shopease_server.cart import CartManager
from shopease_server.models import CartLine
from shopease_server.storage import FileCartStore, MemoryCartStore


@pytest.fixture
def cart():
    return CartManager(MemoryCartStore())


def test_add_to_empty_cart(cart):
    cart.add_to_cart(make_product("p1", price="9.99"), 2)

    assert cart.total() == Decimal("19.98")
    assert cart.count() == 2


def test_repeated_adds_accumulate_on_one_line(cart):
    product = make_product("p1")
    for quantity in (1, 3, 2):
        cart.add_to_cart(product, quantity)

    assert len(cart.items) == 1
    assert cart.get_line("p1").quantity == 6


def test_add_rejects_non_positive_quantity(cart):
    with pytest.raises(ValueError):
        cart.add_to_cart(make_product("p1"), 0)
    assert cart.is_empty()


def test_cart_keeps_a_snapshot_of_the_product(cart):
    product = make_product("p1", price="5.00")
    cart.add_to_cart(product)
    product.price = Decimal("100.00")

    assert cart.total() == Decimal("5.00")


def test_returned_lines_do_not_change_the_cart(cart, customer):
    cart.login(customer)
    added = cart.add_to_cart(make_product("p1", price="9.99"), 2)
    added.quantity = 9
    cart.get_line("p1").quantity = 5
    cart.items[0].quantity = 7
    cart.items[0].product.price = Decimal("0.01")
    cart.user.email = "mallory@example.com"

    assert cart.count() == 2
    assert cart.total() == Decimal("19.98")
    assert cart.user.email == customer.email
    assert cart.store.saves == 2


def test_cart_line_quantity_must_stay_positive():
    line = CartLine(product=make_product("p1"), quantity=1)

    with pytest.raises(ValidationError):
        line.quantity = 0
    with pytest.raises(ValidationError):
        CartLine(product=make_product("p1"), quantity=-1)


def test_remove_quantities_keeps_the_rest(cart):
    cart.add_to_cart(make_product("p1", price="9.99"), 2)
    cart.add_to_cart(make_product("p2", price="4.50"), 1)
    taken = cart.items
    cart.add_to_cart(make_product("p1", price="9.99"), 3)
    cart.add_to_cart(make_product("p3", price="1.00"), 1)
    saves = cart.store.saves

    cart.remove_quantities(taken)

    assert cart.get_line("p1").quantity == 3
    assert cart.get_line("p2") is None
    assert cart.get_line("p3").quantity == 1
    assert cart.store.saves == saves + 1


def test_remove_quantities_of_missing_lines_is_a_noop(cart):
    taken = [CartLine(product=make_product("p1"), quantity=1)]
    notified = []
    cart.subscribe(notified.append)

    cart.remove_quantities(taken)

    assert notified == []
    assert cart.store.saves == 0


def test_update_quantity(cart):
    cart.add_to_cart(make_product("p1"), 3)
    cart.update_quantity("p1", 1)

    assert cart.count() == 1


def test_update_quantity_to_zero_removes_line(cart):
    cart.add_to_cart(make_product("p1"), 3)
    cart.add_to_cart(make_product("p2"), 1)
    cart.update_quantity("p1", 0)

    assert cart.get_line("p1") is None
    assert cart.count() == 1


def test_update_and_remove_unknown_product_are_noops(cart):
    cart.add_to_cart(make_product("p1"))
    saves = cart.store.saves

    cart.update_quantity("missing", 4)
    cart.remove_from_cart("missing")

    assert cart.count() == 1
    assert cart.store.saves == saves


def test_add_then_remove_restores_total(cart):
    cart.add_to_cart(make_product("p1", price="0.10"), 3)
    before = cart.total()

    cart.add_to_cart(make_product("p2", price="0.20"), 7)
    cart.remove_from_cart("p2")

    assert cart.total() == before == Decimal("0.30")


def test_total_is_exact_over_many_additions(cart):
    product = make_product("p1", price="0.10")
    for _ in range(10):
        cart.add_to_cart(product)

    assert cart.total() == Decimal("1.00")


def test_clear_cart_keeps_user(cart, customer):
    cart.login(customer)
    cart.add_to_cart(make_product("p1"), 2)
    cart.clear_cart()

    assert cart.count() == 0
    assert cart.user.id == customer.id


def test_logout_then_login_preserves_cart(cart, customer):
    cart.login(customer)
    cart.add_to_cart(make_product("p1"), 2)
    cart.add_to_cart(make_product("p2", price="1.50"), 1)
    before = cart.snapshot().lines

    cart.logout()
    assert not cart.is_authenticated()
    cart.login(customer)

    assert cart.snapshot().lines == before


def test_clear_cart_survives_reload(tmp_path):
    path = str(tmp_path / "cart.json")
    cart = CartManager(FileCartStore(path))
    cart.add_to_cart(make_product("p1"), 2)
    cart.clear_cart()

    reloaded = CartManager(FileCartStore(path))
    assert reloaded.count() == 0


def test_state_is_reloaded_from_store(tmp_path, customer):
    path = str(tmp_path / "cart.json")
    cart = CartManager(FileCartStore(path))
    cart.login(customer)
    cart.add_to_cart(make_product("p1", price="9.99"), 2)

    reloaded = CartManager(FileCartStore(path))
    assert reloaded.total() == Decimal("19.98")
    assert reloaded.user.email == customer.email


def test_observers_receive_each_mutation(cart):
    seen = []
    unsubscribe = cart.subscribe(lambda state: seen.append(sum(l.quantity for l in state.lines)))

    cart.add_to_cart(make_product("p1"), 2)
    cart.update_quantity("p1", 5)
    unsubscribe()
    cart.clear_cart()

    assert seen == [2, 5]


def test_failing_observer_does_not_block_others(cart):
    seen = []

    def broken(state):
        raise RuntimeError("boom")

    cart.subscribe(broken)
    cart.subscribe(lambda state: seen.append(len(state.lines)))
    cart.add_to_cart(make_product("p1"))

    assert seen == [1]
    assert cart.count() == 1


def test_store_is_written_before_observers_run():
    store = MemoryCartStore()
    cart = CartManager(store)
    persisted = []
    cart.subscribe(lambda state: persisted.append(store.load().lines[0].quantity))

    cart.add_to_cart(make_product("p1"), 4)

    assert persisted == [4]
