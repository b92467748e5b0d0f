SCHEMA_SQL = r"""
-- Categories (Brakes, Filters, ...)
CREATE TABLE IF NOT EXISTS categories (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL UNIQUE COLLATE NOCASE,
  description TEXT,
  color TEXT NOT NULL DEFAULT '#CBD5E1',
  created_at TEXT NOT NULL
);

-- Products (one SKU each; total_stock mirrors SUM(batches.current_quantity))
CREATE TABLE IF NOT EXISTS products (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  sku TEXT NOT NULL UNIQUE COLLATE NOCASE,
  name TEXT NOT NULL,
  category_id INTEGER,
  description TEXT,
  selling_price REAL NOT NULL DEFAULT 0,
  total_stock INTEGER NOT NULL DEFAULT 0,
  min_stock_level INTEGER NOT NULL DEFAULT 0,
  location TEXT,
  created_at TEXT NOT NULL,
  FOREIGN KEY (category_id) REFERENCES categories(id)
);

-- Batches (one purchase lot = one batch)
CREATE TABLE IF NOT EXISTS batches (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  product_id INTEGER NOT NULL,
  purchase_date TEXT NOT NULL,            -- ISO datetime
  purchase_price REAL NOT NULL CHECK (purchase_price >= 0),
  initial_quantity INTEGER NOT NULL CHECK (initial_quantity > 0),
  current_quantity INTEGER NOT NULL CHECK (current_quantity >= 0 AND current_quantity <= initial_quantity),
  status TEXT NOT NULL DEFAULT 'active',  -- active / depleted / archived
  supplier TEXT,
  invoice_number TEXT,
  notes TEXT,
  created_at TEXT NOT NULL,
  FOREIGN KEY (product_id) REFERENCES products(id)
);

CREATE INDEX IF NOT EXISTS ix_batches_product_date ON batches(product_id, purchase_date, id);

-- Sales (header; batch_id is the primary = oldest batch drawn from)
CREATE TABLE IF NOT EXISTS sales (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  product_id INTEGER NOT NULL,
  batch_id INTEGER NOT NULL,
  quantity INTEGER NOT NULL CHECK (quantity > 0),
  sale_price REAL NOT NULL,               -- unit price charged
  purchase_price REAL NOT NULL,           -- unit cost of the primary batch
  profit REAL NOT NULL,
  profit_margin REAL NOT NULL,
  sale_date TEXT NOT NULL,                -- ISO datetime
  customer_ref TEXT,
  invoice_number TEXT,
  created_at TEXT NOT NULL,
  FOREIGN KEY (product_id) REFERENCES products(id),
  FOREIGN KEY (batch_id) REFERENCES batches(id)
);

CREATE INDEX IF NOT EXISTS ix_sales_date ON sales(sale_date);

-- Sale lines (one per batch consumed by a FIFO allocation)
CREATE TABLE IF NOT EXISTS sale_lines (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  sale_id INTEGER NOT NULL,
  batch_id INTEGER NOT NULL,
  quantity INTEGER NOT NULL CHECK (quantity > 0),
  unit_cost REAL NOT NULL,
  FOREIGN KEY (sale_id) REFERENCES sales(id) ON DELETE CASCADE,
  FOREIGN KEY (batch_id) REFERENCES batches(id)
);

CREATE INDEX IF NOT EXISTS ix_sale_lines_batch ON sale_lines(batch_id);

-- Monthly reports (month is 0-indexed; finalized rows are frozen)
CREATE TABLE IF NOT EXISTS monthly_reports (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  year INTEGER NOT NULL,
  month INTEGER NOT NULL CHECK (month >= 0 AND month <= 11),
  total_sales REAL NOT NULL DEFAULT 0,
  total_profit REAL NOT NULL DEFAULT 0,
  average_profit_margin REAL NOT NULL DEFAULT 0,
  is_finalized INTEGER NOT NULL DEFAULT 0,
  report_data TEXT NOT NULL,              -- JSON
  finalized_at TEXT,
  updated_at TEXT NOT NULL,
  UNIQUE (year, month)
);
"""
