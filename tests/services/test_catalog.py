"""
Catalog management: products and specifications, quality-head only, with
referenced entities retained.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inspection_kernel.domain.specifications import (
    ComplianceCriteria,
    DimensionalCriteria,
    SpecificationType,
)
from inspection_kernel.exceptions import (
    DuplicatePartNumberError,
    ForbiddenError,
    ProductInUseError,
    ProductNotFoundError,
    SpecificationInUseError,
    ValidationError,
)


class TestProducts:

    def test_create_product(self, service, quality_head, captured_logs):
        product = service.create_product(quality_head, " PN-1 ", "Bracket", "steel")
        assert product.part_number == "PN-1"
        assert product.is_active
        assert product.created_by_id == quality_head
        assert any(r["message"] == "product_created" for r in captured_logs())

    def test_duplicate_part_number(self, service, quality_head):
        service.create_product(quality_head, "PN-1", "Bracket")
        with pytest.raises(DuplicatePartNumberError):
            service.create_product(quality_head, "PN-1", "Other")

    def test_name_required(self, service, quality_head):
        with pytest.raises(ValidationError):
            service.create_product(quality_head, "PN-2", "  ")

    def test_only_quality_head_manages(self, service, auditor, team_leader):
        for actor in (auditor, team_leader, uuid4()):
            with pytest.raises(ForbiddenError):
                service.create_product(actor, "PN-3", "Bracket")

    def test_update_product(self, service, quality_head, product):
        updated = service.update_product(product.id, quality_head, name="Drive shaft v2")
        assert updated.name == "Drive shaft v2"
        assert updated.part_number == product.part_number

    def test_deactivate_and_reactivate(self, service, quality_head, product):
        assert not service.deactivate_product(product.id, quality_head).is_active
        assert product.id not in {p.id for p in service.list_products(active_only=True)}
        assert product.id in {p.id for p in service.list_products()}
        assert service.reactivate_product(product.id, quality_head).is_active

    def test_list_products_ordered_by_part_number(self, service, quality_head):
        service.create_product(quality_head, "B-2", "b")
        service.create_product(quality_head, "A-1", "a")
        numbers = [p.part_number for p in service.list_products()]
        assert numbers == sorted(numbers)

    def test_delete_unreferenced_product(self, service, quality_head, product):
        service.delete_product(product.id, quality_head)
        with pytest.raises(ProductNotFoundError):
            service.catalog.get_product(product.id)

    def test_delete_referenced_product_refused(
        self, service, quality_head, product, create_inspection
    ):
        create_inspection()
        with pytest.raises(ProductInUseError):
            service.delete_product(product.id, quality_head)
        assert service.catalog.get_product(product.id).id == product.id


class TestSpecifications:

    def test_specifications_in_order(self, service, product):
        specs = service.specifications_for(product.id)
        assert [s.parameter_name for s in specs] == ["Length", "Surface finish"]
        assert specs[0].spec_type is SpecificationType.DIMENSIONAL
        assert specs[0].requirement_text == "10.0 - 11.0"
        assert specs[0].standard_text == "10.5 mm"

    def test_add_specification_from_dict(self, service, quality_head, product):
        spec = service.add_specification(
            product.id,
            quality_head,
            "Certificate",
            {"check_method": "Mill certificate", "evidence_required": True},
            spec_type="compliance",
        )
        assert spec.criteria == ComplianceCriteria(
            check_method="Mill certificate", evidence_required=True
        )

    def test_dict_without_type_refused(self, service, quality_head, product):
        with pytest.raises(ValidationError):
            service.add_specification(product.id, quality_head, "X", {"check_method": "y"})

    def test_invalid_dict_criteria_refused(self, service, quality_head, product):
        with pytest.raises(ValidationError):
            service.add_specification(
                product.id,
                quality_head,
                "Width",
                {"standard_value": "5", "tolerance_min": "6", "tolerance_max": "4"},
                spec_type="dimensional",
            )

    def test_edit_unreferenced_specification(self, service, quality_head, product):
        spec = service.specifications_for(product.id)[0]
        updated = service.update_specification(
            spec.id,
            quality_head,
            criteria=DimensionalCriteria(
                standard_value="10.5", tolerance_min=Decimal("10.2"), tolerance_max=Decimal("10.8")
            ),
        )
        assert updated.criteria.tolerance_min == Decimal("10.2")

    def test_edit_referenced_specification_refused(
        self, service, quality_head, product, create_inspection
    ):
        create_inspection()
        spec = service.specifications_for(product.id)[0]
        with pytest.raises(SpecificationInUseError):
            service.update_specification(spec.id, quality_head, parameter_name="Len")
        # Ordering stays editable
        assert service.update_specification(spec.id, quality_head, sort_order=5).id == spec.id

    def test_delete_unreferenced_specification(self, service, quality_head, product):
        spec = service.specifications_for(product.id)[1]
        service.delete_specification(spec.id, quality_head)
        assert len(service.specifications_for(product.id)) == 1

    def test_delete_referenced_specification_refused(
        self, service, quality_head, product, create_inspection, captured_logs
    ):
        detail = create_inspection()
        spec = service.specifications_for(product.id)[0]
        with pytest.raises(SpecificationInUseError):
            service.delete_specification(spec.id, quality_head)
        assert any(r["message"] == "specification_delete_blocked" for r in captured_logs())
        # Past results remain intact
        again = service.get_inspection(detail.id)
        assert [r.specification_id for r in again.results][0] == spec.id

    def test_another_product_can_be_built(self, service, make_product):
        product = make_product("SHAFT-200")
        assert len(service.specifications_for(product.id)) == 2
