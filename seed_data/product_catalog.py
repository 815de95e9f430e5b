"""Sample catalogue shown on a fresh store. Prices are in Ghana cedis."""

from __future__ import annotations

ADMIN_ACCOUNT = {
    "name": "Admin User",
    "email": "admin@ttech.com",
    "password": "admin123",
}

PRODUCT_CATALOG = [
    {
        "name": "Active Noise Cancelling Wireless Headphones",
        "description": "Over-ear wireless headphones with active noise cancelling and all-day battery life.",
        "price": "800.00",
        "currency": "GHS",
        "category": "Headphones",
        "image": "/images/headphones-1.jpg",
        "rating": 4.5,
        "num_reviews": 128,
        "count_in_stock": 15,
    },
    {
        "name": "HP Laptop 15-dw3000",
        "description": "Reliable laptop for work and entertainment. Intel Core i5, 8GB RAM, 256GB SSD.",
        "price": "4200.00",
        "currency": "GHS",
        "category": "Laptops",
        "image": "/images/laptop-1.webp",
        "rating": 4.3,
        "num_reviews": 89,
        "count_in_stock": 8,
    },
    {
        "name": "JBL Flip 6",
        "description": "JBL Flip 6 is IP67 waterproof and dustproof, so you can bring your speaker anywhere.",
        "price": "180.00",
        "currency": "GHS",
        "category": "Speakers",
        "image": "/images/speaker-4.webp",
        "rating": 4.8,
        "num_reviews": 95,
        "count_in_stock": 25,
    },
    {
        "name": "iPhone 16",
        "description": "Innovative design for ultimate performance and battery.",
        "price": "320.00",
        "currency": "GHS",
        "category": "Phones",
        "image": "/images/phone-1.webp",
        "rating": 4.6,
        "num_reviews": 42,
        "count_in_stock": 12,
    },
    {
        "name": "3D Thundercloud LED",
        "description": "Colour-changing cloud light with lightning effects for bedrooms and gaming rooms, 16 feet.",
        "price": "95.00",
        "currency": "GHS",
        "category": "LED Lights",
        "image": "/images/led-1.jpg",
        "rating": 4.9,
        "num_reviews": 203,
        "count_in_stock": 50,
    },
    {
        "name": "Samsung Galaxy S8",
        "description": "128GB, expandable up to 1.5TB via microSD card.",
        "price": "850.00",
        "currency": "GHS",
        "category": "Phones",
        "image": "/images/phone-5.webp",
        "rating": 4.7,
        "num_reviews": 156,
        "count_in_stock": 30,
    },
]
