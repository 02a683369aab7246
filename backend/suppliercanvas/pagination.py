from typing import Optional


ALIBABA_PRODUCT_PAGE_SIZE = 48
ALIBABA_SUPPLIER_PAGE_SIZE = 20
MIC_PRODUCT_PAGE_SIZE = 36
MIC_COMPANY_PAGE_SIZE = 20
MIC_IMAGE_PAGE_SIZE = 36


def calculate_has_more(
    total_count: Optional[int],
    page: int,
    page_size: int,
    current_count: int = 0,
) -> bool:
    """
    Если площадка отдала общее количество, сравниваем его с уже показанным объёмом.
    Иначе считаем, что полная страница означает наличие следующей.
    """
    if total_count is not None:
        return page * page_size < total_count
    return current_count >= page_size
