from datetime import date, timedelta
from decimal import Decimal

import pytest

from crud import tax as tax_crud
from crud import tax_exemption as tax_exemption_crud
from crud import tax_group as tax_group_crud
from schemas.tax import TaxCreate
from schemas.tax_exemption import TaxExemptionCreate, TaxExemptionUpdate
from schemas.tax_group import TaxGroupCreate, TaxGroupUpdate
from utils.errors import BadRequest, NotFound
from utils.tax_calculation import calculate_tax_with_exemptions

CONTACT_ID = 77


@pytest.fixture
def vat(ctx):
    return tax_crud.create_tax(ctx, TaxCreate(name="VAT", type="normal", rate=Decimal("10")))


@pytest.fixture
def levy(ctx):
    return tax_crud.create_tax(ctx, TaxCreate(name="Levy", type="compound", rate=Decimal("5")))


class TestCalculation:
    """Compound taxes raise the base for every tax after them."""

    def test_order_changes_the_result(self, vat, levy):
        normal_first = calculate_tax_with_exemptions(Decimal("100"), [vat, levy])
        compound_first = calculate_tax_with_exemptions(Decimal("100"), [levy, vat])

        assert normal_first.tax_amount == Decimal("15")
        assert compound_first.tax_amount == Decimal("15.5")
        assert compound_first.total_amount == Decimal("115.5")
        assert compound_first.effective_rate == Decimal("15.50")

    def test_zero_amount_has_zero_effective_rate(self, vat):
        result = calculate_tax_with_exemptions(Decimal("0"), [vat])
        assert result.tax_amount == 0
        assert result.effective_rate == Decimal("0")

    def test_ad_hoc_list_applies_compound_first(self, ctx, vat, levy):
        result = tax_crud.calculate_tax(ctx, Decimal("100"), [vat.id, levy.id])

        assert [item.tax_id for item in result.tax_breakdown] == [levy.id, vat.id]
        assert result.tax_amount == Decimal("15.5")

    def test_unknown_tax_id(self, ctx, vat):
        with pytest.raises(BadRequest) as exc:
            tax_crud.calculate_tax(ctx, Decimal("100"), [vat.id, 9999])
        assert exc.value.code == "INVALID_TAX_IDS"

    def test_deleted_tax_is_unknown(self, ctx, vat):
        tax_crud.delete_tax(ctx, vat.id)
        with pytest.raises(BadRequest):
            tax_crud.calculate_tax(ctx, Decimal("100"), [vat.id])

    def test_disabled_tax_is_unknown(self, ctx, vat, levy):
        tax_crud.set_tax_active(ctx, vat.id, False)
        with pytest.raises(BadRequest):
            tax_crud.calculate_tax(ctx, Decimal("100"), [vat.id, levy.id])


class TestExemptions:

    def test_exemption_zeroes_one_tax(self, ctx, vat, levy):
        tax_exemption_crud.create_tax_exemption(ctx, TaxExemptionCreate(
            contact_id=CONTACT_ID, tax_id=vat.id, exemption_type="resale"
        ))

        result = tax_crud.calculate_tax(ctx, Decimal("100"), [vat.id, levy.id], contact_id=CONTACT_ID)

        breakdown = {item.tax_id: item for item in result.tax_breakdown}
        assert breakdown[vat.id].is_exempt
        assert breakdown[vat.id].tax_amount == 0
        assert result.tax_amount == Decimal("5")

    def test_exemption_without_tax_covers_everything(self, ctx, vat, levy):
        tax_exemption_crud.create_tax_exemption(ctx, TaxExemptionCreate(
            contact_id=CONTACT_ID, exemption_type="non_profit"
        ))
        result = tax_crud.calculate_tax(ctx, Decimal("100"), [vat.id, levy.id], contact_id=CONTACT_ID)
        assert result.tax_amount == 0
        assert result.total_amount == Decimal("100")

    def test_other_contacts_still_pay(self, ctx, vat):
        tax_exemption_crud.create_tax_exemption(ctx, TaxExemptionCreate(
            contact_id=CONTACT_ID, exemption_type="government"
        ))
        result = tax_crud.calculate_tax(ctx, Decimal("100"), [vat.id], contact_id=CONTACT_ID + 1)
        assert result.tax_amount == Decimal("10")

    def test_expired_or_inactive_exemptions_are_ignored(self, ctx, vat):
        expired = tax_exemption_crud.create_tax_exemption(ctx, TaxExemptionCreate(
            contact_id=CONTACT_ID, exemption_type="resale",
            certificate_expiry=date.today() - timedelta(days=30),
        ))
        assert not tax_exemption_crud.is_contact_exempt(ctx, CONTACT_ID, vat.id)
        assert tax_exemption_crud.get_contact_exemptions(ctx, CONTACT_ID) == []

        tax_exemption_crud.update_tax_exemption(ctx, expired.id, TaxExemptionUpdate(
            certificate_expiry=date.today() + timedelta(days=30)
        ))
        assert tax_exemption_crud.is_contact_exempt(ctx, CONTACT_ID, vat.id)

        tax_exemption_crud.set_tax_exemption_active(ctx, expired.id, False)
        assert not tax_exemption_crud.is_contact_exempt(ctx, CONTACT_ID, vat.id)

    def test_exemption_for_missing_tax(self, ctx):
        with pytest.raises(NotFound):
            tax_exemption_crud.create_tax_exemption(ctx, TaxExemptionCreate(
                contact_id=CONTACT_ID, tax_id=424242, exemption_type="other"
            ))

    def test_restore_requires_deletion(self, ctx):
        exemption = tax_exemption_crud.create_tax_exemption(ctx, TaxExemptionCreate(
            contact_id=CONTACT_ID, exemption_type="other"
        ))
        with pytest.raises(BadRequest):
            tax_exemption_crud.restore_tax_exemption(ctx, exemption.id)

        tax_exemption_crud.delete_tax_exemption(ctx, exemption.id)
        assert tax_exemption_crud.restore_tax_exemption(ctx, exemption.id).deleted_at is None


class TestTaxGroups:

    def test_group_uses_its_stored_order(self, ctx, vat, levy):
        normal_first = tax_group_crud.create_tax_group(ctx, TaxGroupCreate(name="A", tax_ids=[vat.id, levy.id]))
        compound_first = tax_group_crud.create_tax_group(ctx, TaxGroupCreate(name="B", tax_ids=[levy.id, vat.id]))

        assert [tax.id for tax in normal_first.taxes] == [vat.id, levy.id]
        assert tax_group_crud.calculate_tax_with_group(ctx, normal_first.id, Decimal("100")).tax_amount == Decimal("15")
        assert tax_group_crud.calculate_tax_with_group(ctx, compound_first.id, Decimal("100")).tax_amount == Decimal("15.5")

    def test_update_replaces_membership(self, ctx, vat, levy):
        group = tax_group_crud.create_tax_group(ctx, TaxGroupCreate(name="A", tax_ids=[vat.id, levy.id]))
        updated = tax_group_crud.update_tax_group(ctx, group.id, TaxGroupUpdate(tax_ids=[levy.id]))
        assert [tax.id for tax in updated.taxes] == [levy.id]

    def test_group_with_unknown_tax(self, ctx, vat):
        with pytest.raises(BadRequest):
            tax_group_crud.create_tax_group(ctx, TaxGroupCreate(name="A", tax_ids=[vat.id, 31337]))

    def test_group_left_without_taxes(self, ctx, vat):
        group = tax_group_crud.create_tax_group(ctx, TaxGroupCreate(name="A", tax_ids=[vat.id]))
        tax_crud.delete_tax(ctx, vat.id)
        with pytest.raises(BadRequest) as exc:
            tax_group_crud.calculate_tax_with_group(ctx, group.id, Decimal("100"))
        assert exc.value.code == "TAX_GROUP_HAS_NO_TAXES"

    def test_delete_and_restore(self, ctx, vat):
        group = tax_group_crud.create_tax_group(ctx, TaxGroupCreate(name="A", tax_ids=[vat.id]))
        tax_group_crud.delete_tax_group(ctx, group.id)
        with pytest.raises(NotFound):
            tax_group_crud.get_tax_group(ctx, group.id)
        assert tax_group_crud.restore_tax_group(ctx, group.id).deleted_at is None


class TestTaxRegistry:

    def test_statistics(self, ctx, vat, levy):
        tax_crud.create_tax(ctx, TaxCreate(name="WHT", type="withholding", rate=Decimal("3"), is_active=False))

        stats = tax_crud.get_tax_statistics(ctx)

        assert (stats.total, stats.active, stats.inactive) == (3, 2, 1)
        assert stats.by_type == {"normal": 1, "compound": 1, "withholding": 1}
        assert stats.average_rate == Decimal("6.00")
        assert len(stats.recent_taxes) == 3

    def test_list_filters(self, ctx, vat, levy):
        items, total = tax_crud.get_taxes(ctx, tax_type="compound")
        assert total == 1 and items[0].id == levy.id

        tax_crud.set_tax_active(ctx, vat.id, False)
        assert [tax.id for tax in tax_crud.get_active_taxes(ctx)] == [levy.id]
        assert tax_crud.get_tax_status(ctx, vat.id).is_active is False

    def test_restore_semantics(self, ctx, vat):
        with pytest.raises(BadRequest) as exc:
            tax_crud.restore_tax(ctx, vat.id)
        assert exc.value.code == "TAX_NOT_DELETED"
        with pytest.raises(NotFound):
            tax_crud.restore_tax(ctx, 5555)

        tax_crud.delete_tax(ctx, vat.id)
        assert tax_crud.restore_tax(ctx, vat.id).deleted_at is None
